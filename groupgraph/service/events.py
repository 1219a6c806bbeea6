"""
Publication of membership events.

Events are only ever handed to a notifier after the transaction that produced
them has committed. Publication is fire-and-forget: `Notifier.notify` schedules
the work on the running event loop and returns immediately, and any failure is
logged and discarded so that it can never affect the caller.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
from structlog import get_logger
from structlog.typing import FilteringBoundLogger


class Notifier:
    """
    Base class for event notifiers. Subclasses implement `publish`.
    """

    def __init__(self):
        self._pending: set[asyncio.Task] = set()

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    async def _publish_and_log(
        self, topic: str, payload: dict[str, Any], log: FilteringBoundLogger
    ) -> None:
        try:
            await self.publish(topic, payload)
        except Exception as e:
            await log.aerror("event.publish_failed", error=str(e))
            return

        await log.adebug("event.published")

    def notify(
        self, topic: str, payload: dict[str, Any], log: FilteringBoundLogger
    ) -> asyncio.Task:
        """
        Schedule publication of `payload` on `topic` without waiting for it.
        Must be called from within a running event loop.
        """
        log = log.bind(topic=topic, notifier=type(self).__name__)
        task = asyncio.get_running_loop().create_task(
            self._publish_and_log(topic, payload, log)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """
        Wait for all outstanding publications to finish.
        """
        if self._pending:
            await asyncio.gather(*list(self._pending))


class LoggingNotifier(Notifier):
    """
    Writes events to the structured log. Used when no event bus is configured.
    """

    def __init__(self, log: FilteringBoundLogger | None = None):
        super().__init__()
        self.log = log or get_logger()

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        await self.log.ainfo("event.membership", topic=topic, payload=payload)


class HttpNotifier(Notifier):
    """
    Posts events to an HTTP event bus, wrapped in the standard bus envelope.
    """

    url: str
    originator: str
    token: str | None
    timeout: float

    def __init__(
        self,
        url: str,
        originator: str,
        token: str | None = None,
        timeout: float = 10.0,
    ):
        super().__init__()
        self.url = url
        self.originator = originator
        self.token = token
        self.timeout = timeout

    def envelope(self, topic: str, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "topic": topic,
            "originator": self.originator,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "mime-type": "application/json",
            "payload": payload,
        }

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        headers = {}

        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url, json=self.envelope(topic, payload), headers=headers
            )
            response.raise_for_status()
