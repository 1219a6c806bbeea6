"""
Main settings object.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import URL

from groupgraph.service.events import HttpNotifier, LoggingNotifier, Notifier

from .managers import AsyncSessionManager, SyncSessionManager


class Settings(BaseSettings):
    database_type: Literal["sqlite", "postgres"] = "sqlite"
    database_user: str | None = None
    database_password: str | None = None
    database_port: int | None = None
    database_host: str | None = None
    database_db: str = "groupgraph.db"

    database_echo: bool = False

    # Event bus
    member_add_topic: str = "groups.notification.member.add"
    member_delete_topic: str = "groups.notification.member.delete"
    # Deletions were historically not published; opt in explicitly.
    notify_on_member_delete: bool = False
    event_bus_url: str | None = None
    event_bus_token: str | None = None
    event_originator: str = "groupgraph"
    event_timeout: float = 10.0

    model_config = SettingsConfigDict(env_prefix="GROUPGRAPH_", env_file=".env")

    @property
    def sync_driver(self) -> str:
        match self.database_type:
            case "sqlite":
                return "sqlite"
            case "postgres":
                return "postgresql+psycopg"
            case _:
                raise ValueError

    @property
    def async_driver(self) -> str:
        match self.database_type:
            case "sqlite":
                return "sqlite+aiosqlite"
            case "postgres":
                return "postgresql+asyncpg"
            case _:
                raise ValueError

    @property
    def sync_uri(self) -> URL:
        return URL.create(
            drivername=self.sync_driver,
            username=self.database_user,
            password=self.database_password,
            host=self.database_host,
            port=self.database_port,
            database=self.database_db,
        )

    def sync_manager(self) -> SyncSessionManager:
        return SyncSessionManager(connection_url=self.sync_uri, echo=self.database_echo)

    @property
    def async_uri(self) -> URL:
        return URL.create(
            drivername=self.async_driver,
            username=self.database_user,
            password=self.database_password,
            host=self.database_host,
            port=self.database_port,
            database=self.database_db,
        )

    def async_manager(self) -> AsyncSessionManager:
        return AsyncSessionManager(
            connection_url=self.async_uri, echo=self.database_echo
        )

    def notifier(self) -> Notifier:
        """
        The notifier for membership events: the HTTP event bus when one is
        configured, otherwise the structured log.
        """
        if self.event_bus_url:
            return HttpNotifier(
                url=self.event_bus_url,
                originator=self.event_originator,
                token=self.event_bus_token,
                timeout=self.event_timeout,
            )

        return LoggingNotifier()
