"""
The mock Notifier, used for testing.
"""

from typing import Any

from .events import Notifier


class MockPublishError(Exception):
    pass


class MockNotifier(Notifier):
    """
    Records published events in memory. When `fail` is set, every publication
    raises instead, which must never affect the operation that triggered it.
    """

    published: list[tuple[str, dict[str, Any]]]
    fail: bool

    def __init__(self, fail: bool = False):
        super().__init__()
        self.published = []
        self.fail = fail

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise MockPublishError(f"Refusing to publish to {topic}")

        self.published.append((topic, payload))

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.published]
