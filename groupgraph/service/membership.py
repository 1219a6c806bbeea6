"""
Service layer for membership edges: adding and removing members while
keeping the containment graph consistent.

Each public operation runs in a single transaction that covers every
validation step and the write, and publishes its event only once that
transaction has committed. The transaction bodies (`insert_member`,
`delete_member`) are exposed separately for callers that manage their own
transaction scope.
"""

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupgraph.config.managers import AsyncSessionManager
from groupgraph.config.settings import Settings
from groupgraph.core.errors import BadRequest, Conflict
from groupgraph.core.members import (
    MemberById,
    MemberRef,
    MembershipData,
    MembershipType,
    RemovedMembershipData,
    member_ref,
)
from groupgraph.core.principal import Principal
from groupgraph.core.uuid import UUID, uuid7
from groupgraph.database.graph import path_exists
from groupgraph.database.group import Group
from groupgraph.database.membership import GroupContains
from groupgraph.database.user import User

from . import authorization
from . import groups as groups_service
from . import user as user_service
from .events import Notifier


class SelfMembershipError(BadRequest):
    pass


class MembershipExistsError(Conflict):
    pass


class CyclicMembershipError(Conflict):
    pass


class PrivateGroupNestingError(Conflict):
    pass


async def resolve_member(
    member: MemberRef,
    membership_type: MembershipType,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group | User:
    """
    Resolve a member reference to the Group or User record it names.

    Raises
    ------
    GroupNotFound
        If a Group member does not exist.
    UserNotFound
        If a User member does not exist.
    """
    if membership_type == MembershipType.GROUP:
        return await groups_service.read_by_ref(member, conn=conn, log=log)

    try:
        return await user_service.read_by_ref(member, conn=conn)
    except user_service.UserNotFound as e:
        await log.ainfo("membership.user_not_found", error=str(e))
        raise e


async def resolve_member_ids(member: MemberRef, conn: AsyncSession) -> list[UUID]:
    """
    Canonical identifiers a member of unknown type may stand for. A legacy
    identifier can name both a user (`universal_uid`) and a group (`old_id`);
    both are returned, the user first, and the edge itself decides which one
    is meant. Empty when a legacy identifier matches nothing.
    """
    if isinstance(member, MemberById):
        return [member.member_id]

    user_id = (
        await conn.execute(
            select(User.user_id).where(User.universal_uid == member.legacy_id)
        )
    ).scalar_one_or_none()

    group_id = (
        await conn.execute(
            select(Group.group_id).where(Group.old_id == member.legacy_id)
        )
    ).scalar_one_or_none()

    return [x for x in (user_id, group_id) if x is not None]


def refers_to_group(member: MemberRef, group: Group) -> bool:
    if isinstance(member, MemberById):
        return member.member_id == group.group_id

    return group.old_id is not None and member.legacy_id == group.old_id


async def insert_member(
    principal: Principal,
    group_id: str | UUID,
    member: str | UUID | MemberRef,
    membership_type: MembershipType,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> MembershipData:
    """
    Validate and insert a membership edge within the caller's transaction.

    Parameters
    ----------
    principal: Principal
        The acting principal.
    group_id: str | UUID
        Canonical or legacy identifier of the containing group.
    member
        Canonical or legacy identifier of the user or group to add.
    membership_type: MembershipType
        Whether `member` is a user or a group.

    Raises
    ------
    GroupNotFound
        If the group, or a Group member, does not exist.
    UserNotFound
        If a User member does not exist.
    MembershipForbidden
        If the principal may not add this member.
    SelfMembershipError
        If a group is added to itself.
    PrivateGroupNestingError
        If a non-private group is added to a private group.
    MembershipExistsError
        If the member is already in the group.
    CyclicMembershipError
        If the edge would close a cycle of groups.
    """
    member = member_ref(member)
    membership_type = MembershipType(membership_type)

    log = log.bind(
        group_id=str(group_id),
        member=str(member),
        membership_type=membership_type.value,
        principal=str(principal.user_id) if not principal.machine else "system",
    )

    group = await groups_service.read_by_ref(
        group_id,
        conn=conn,
        log=log,
        include_inactive=authorization.has_admin_visibility(principal),
    )
    log = log.bind(group_id=str(group.group_id))

    await authorization.ensure_can_add(principal, group, member, membership_type, log)

    # Checked before resolving the child, which may not see an inactive group
    if membership_type == MembershipType.GROUP and refers_to_group(member, group):
        await log.ainfo("membership.self_reference")
        raise SelfMembershipError("A group can not add to itself.")

    child = await resolve_member(member, membership_type, conn, log)

    if isinstance(child, Group):
        if group.private_group and not child.private_group:
            await log.ainfo("membership.private_nesting")
            raise PrivateGroupNestingError(
                "Parent group is private, the child group must be private too."
            )

        member_id = child.group_id
        member_legacy_id = child.old_id
    else:
        member_id = child.user_id
        member_legacy_id = child.universal_uid

    log = log.bind(member_id=str(member_id))

    existing = await conn.execute(
        select(GroupContains.membership_id).where(
            GroupContains.group_id == group.group_id,
            GroupContains.member_id == member_id,
        )
    )

    if existing.first() is not None:
        await log.ainfo("membership.exists")
        raise MembershipExistsError("The member is already in the group")

    if membership_type == MembershipType.GROUP:
        await groups_service.lock([group.group_id, member_id], conn)

        if await path_exists(member_id, group.group_id, conn):
            await log.ainfo("membership.cycle_detected")
            raise CyclicMembershipError("There is cyclical group reference")

    edge = GroupContains(
        membership_id=uuid7(),
        group_id=group.group_id,
        member_id=member_id,
        membership_type=membership_type.value,
        created_at=datetime.now(tz=timezone.utc),
        created_by=None if principal.machine else principal.user_id,
    )

    try:
        conn.add(edge)
        await conn.flush()
    except IntegrityError as e:
        await log.ainfo("membership.exists", error=str(e))
        raise MembershipExistsError("The member is already in the group")

    await log.ainfo("membership.added", membership_id=str(edge.membership_id))

    return MembershipData(
        membership_id=edge.membership_id,
        group_id=group.group_id,
        group_old_id=group.old_id,
        group_name=group.name,
        created_at=edge.created_at,
        created_by=edge.created_by,
        member_id=member_id,
        member_legacy_id=member_legacy_id,
        membership_type=membership_type,
    )


async def delete_member(
    principal: Principal,
    group_id: str | UUID,
    member: str | UUID | MemberRef,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> RemovedMembershipData | None:
    """
    Delete a membership edge within the caller's transaction.

    Returns None, rather than raising, when there is no such edge.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    MembershipForbidden
        If the principal may not remove this member.
    """
    member = member_ref(member)

    log = log.bind(
        group_id=str(group_id),
        member=str(member),
        principal=str(principal.user_id) if not principal.machine else "system",
    )

    group = await groups_service.read_by_ref(
        group_id,
        conn=conn,
        log=log,
        include_inactive=authorization.has_admin_visibility(principal),
    )
    log = log.bind(group_id=str(group.group_id))

    await authorization.ensure_can_remove(principal, group, member, log)

    member_ids = await resolve_member_ids(member, conn)

    if not member_ids:
        await log.ainfo("membership.remove.member_not_found")
        return None

    edge = (
        await conn.execute(
            select(GroupContains)
            .where(
                GroupContains.group_id == group.group_id,
                GroupContains.member_id.in_(member_ids),
            )
            # users before groups sharing the legacy identifier
            .order_by(GroupContains.membership_type.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    if edge is None:
        await log.ainfo("membership.remove.not_member")
        return None

    member_id = edge.member_id
    log = log.bind(member_id=str(member_id))

    await conn.execute(
        delete(GroupContains).where(GroupContains.membership_id == edge.membership_id)
    )

    reported_id = str(member_id)

    if edge.is_group:
        child = await conn.get(Group, member_id)
        if child is not None and child.old_id is not None:
            reported_id = child.old_id

    await log.ainfo("membership.removed", membership_id=str(edge.membership_id))

    return RemovedMembershipData(
        group_id=group.group_id,
        group_old_id=group.old_id,
        group_name=group.name,
        member_id=reported_id,
    )


async def add_member(
    principal: Principal,
    group_id: str | UUID,
    member: str | UUID | MemberRef,
    membership_type: MembershipType,
    manager: AsyncSessionManager,
    notifier: Notifier,
    settings: Settings,
    log: FilteringBoundLogger,
) -> MembershipData:
    """
    Add a user or group to a group in its own transaction, then publish the
    new membership on `settings.member_add_topic`.

    See `insert_member` for the errors raised; on any of them the transaction
    is rolled back and nothing is published.
    """
    log = log.bind(group_id=str(group_id), member=str(member))

    try:
        async with manager.session() as conn:
            async with conn.begin():
                membership = await insert_member(
                    principal=principal,
                    group_id=group_id,
                    member=member,
                    membership_type=membership_type,
                    conn=conn,
                    log=log,
                )
    except Exception as e:
        await log.ainfo("membership.add.rolled_back", error=str(e))
        raise e

    notifier.notify(
        settings.member_add_topic, membership.model_dump(mode="json"), log
    )

    return membership


async def remove_member(
    principal: Principal,
    group_id: str | UUID,
    member: str | UUID | MemberRef,
    manager: AsyncSessionManager,
    notifier: Notifier,
    settings: Settings,
    log: FilteringBoundLogger,
) -> RemovedMembershipData | None:
    """
    Remove a member from a group in its own transaction. Removing a member
    that is not in the group is a no-op and returns None.

    The removal is published on `settings.member_delete_topic` only when
    `settings.notify_on_member_delete` is set.
    """
    log = log.bind(group_id=str(group_id), member=str(member))

    try:
        async with manager.session() as conn:
            async with conn.begin():
                removed = await delete_member(
                    principal=principal,
                    group_id=group_id,
                    member=member,
                    conn=conn,
                    log=log,
                )
    except Exception as e:
        await log.ainfo("membership.remove.rolled_back", error=str(e))
        raise e

    if removed is not None and settings.notify_on_member_delete:
        notifier.notify(
            settings.member_delete_topic, removed.model_dump(mode="json"), log
        )

    return removed
