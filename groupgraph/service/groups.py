"""
Service layer for groups.

Groups are owned by the external group-management flow; this module resolves
them for membership operations and provides a minimal `create` for seeding.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupgraph.core.errors import Conflict, NotFound
from groupgraph.core.group import GroupStatus
from groupgraph.core.members import MemberById, MemberRef, member_ref
from groupgraph.core.uuid import UUID
from groupgraph.database.group import Group


class GroupNotFound(NotFound):
    pass


class GroupExistsError(Conflict):
    pass


async def create(
    name: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    old_id: str | None = None,
    private_group: bool = False,
    self_register: bool = False,
    organization_id: str | None = None,
    status: GroupStatus = GroupStatus.ACTIVE,
) -> Group:
    """
    Create a new group.

    Parameters
    ----------
    name: str
        Display name of the group.
    old_id: str, optional
        Identifier of the group in the legacy system of record.
    private_group: bool
        Whether membership listings are restricted to admins and members.
    self_register: bool
        Whether non-admin users may add and remove themselves.
    organization_id: str, optional
        The owning organization.

    Raises
    ------
    GroupExistsError
        If a group with this legacy identifier already exists.
    """
    log = log.bind(
        group_name=name,
        old_id=old_id,
        private_group=private_group,
        self_register=self_register,
    )

    group = Group(
        name=name,
        old_id=old_id,
        status=status.value,
        private_group=private_group,
        self_register=self_register,
        organization_id=organization_id,
        created_at=datetime.now(tz=timezone.utc),
    )

    try:
        conn.add(group)
        await conn.flush()
    except IntegrityError as e:
        log = log.bind(error=e)
        await log.ainfo("group.exists")
        raise GroupExistsError(f"Group with legacy id {old_id} already exists")

    await log.ainfo("group.created", group_id=group.group_id)

    return group


async def read_by_id(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    group = await conn.get(Group, group_id)
    if group is None:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with id {group_id} not found")
    await log.adebug("group.found")
    return group


async def read_by_old_id(
    old_id: str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group by its legacy identifier.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(old_id=old_id)
    result = await conn.execute(select(Group).where(Group.old_id == old_id))
    group = result.scalar_one_or_none()
    if group is None:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with legacy id {old_id} not found")
    await log.adebug("group.found")
    return group


async def read_by_ref(
    group_ref: str | UUID | MemberRef,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    include_inactive: bool = False,
) -> Group:
    """
    Resolve a group from either its canonical or its legacy identifier.

    Parameters
    ----------
    group_ref
        The identifier, disambiguated by format (see `member_ref`).
    include_inactive: bool
        Admin visibility. When False, inactive groups are reported as not
        found.

    Raises
    ------
    GroupNotFound
        If the group does not exist or is not visible.
    """
    ref = member_ref(group_ref)

    if isinstance(ref, MemberById):
        group = await read_by_id(ref.member_id, conn, log)
    else:
        group = await read_by_old_id(ref.legacy_id, conn, log)

    if not include_inactive and not group.active:
        await log.ainfo("group.inactive", group_id=group.group_id)
        raise GroupNotFound(f"Group {ref} not found")

    return group


async def lock(group_ids: list[UUID], conn: AsyncSession) -> None:
    """
    Take row locks on the given groups, in a consistent order, for the rest
    of the transaction. A no-op on databases without row locking.
    """
    await conn.execute(
        select(Group.group_id)
        .where(Group.group_id.in_(sorted(set(group_ids))))
        .order_by(Group.group_id)
        .with_for_update()
    )
