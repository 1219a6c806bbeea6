"""
Configuration variables and fixtures for the service layer tests.
"""

import pytest_asyncio
import structlog

from groupgraph.config.settings import Settings
from groupgraph.core.members import MembershipType
from groupgraph.core.principal import Principal
from groupgraph.core.uuid import uuid7
from groupgraph.service import groups as groups_service
from groupgraph.service import membership as membership_service
from groupgraph.service import user as user_service
from groupgraph.service.mock import MockNotifier


def legacy_id(prefix: str) -> str:
    return f"{prefix}-{uuid7().hex}"


@pytest_asyncio.fixture(scope="session")
def session_manager(server_settings: Settings, database):
    yield server_settings.async_manager()


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest_asyncio.fixture
def notifier():
    yield MockNotifier()


@pytest_asyncio.fixture(scope="session")
def admin():
    yield Principal(user_id=uuid7(), grants={"admin"})


@pytest_asyncio.fixture(scope="session")
def make_group(session_manager, logger):
    async def make(name: str = "test_group", **kwargs):
        kwargs.setdefault("old_id", legacy_id("grp"))

        async with session_manager.session() as conn:
            async with conn.begin():
                group = await groups_service.create(
                    name=name, conn=conn, log=logger, **kwargs
                )

        return group

    yield make


@pytest_asyncio.fixture(scope="session")
def make_user(session_manager, logger):
    async def make(user_name: str = "test_user", universal_uid: str | None = None):
        async with session_manager.session() as conn:
            async with conn.begin():
                user = await user_service.create(
                    universal_uid=universal_uid or legacy_id("uid"),
                    user_name=user_name,
                    conn=conn,
                    log=logger,
                )

        return user

    yield make


@pytest_asyncio.fixture(scope="session")
def add(server_settings, session_manager, logger, admin):
    """
    Add a member as an admin, ignoring notifications.
    """
    notifier = MockNotifier()

    async def add(group_id, member, membership_type=MembershipType.USER):
        return await membership_service.add_member(
            principal=admin,
            group_id=group_id,
            member=member,
            membership_type=membership_type,
            manager=session_manager,
            notifier=notifier,
            settings=server_settings,
            log=logger,
        )

    yield add
