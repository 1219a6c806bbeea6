"""
Authorization rules for reading and changing group membership.

- The system (machine) principal bypasses every check.
- Admins may view and change any group.
- Anyone may view a non-private group; private groups are visible to their
  direct members only.
- Non-admins may only add or remove themselves, as users, in groups that
  allow self-registration.

All `ensure_*` functions raise `MembershipForbidden` and are called before any
write is attempted.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupgraph.core.errors import Forbidden
from groupgraph.core.members import MemberRef, MembershipType
from groupgraph.core.principal import Principal
from groupgraph.core.uuid import UUID
from groupgraph.database.group import Group
from groupgraph.database.membership import GroupContains


class MembershipForbidden(Forbidden):
    pass


def has_admin_visibility(principal: Principal) -> bool:
    """
    Whether `principal` may resolve inactive groups. The system principal
    bypasses authorization but does not get admin visibility.
    """
    return not principal.machine and principal.is_admin


def can_mutate(principal: Principal, group: Group) -> bool:
    """
    Unrestricted write access to the membership of `group`.
    """
    return principal.machine or principal.is_admin


def is_self_register_eligible(
    principal: Principal,
    group: Group,
    candidate: MemberRef,
    membership_type: MembershipType,
) -> bool:
    return (
        group.self_register
        and membership_type == MembershipType.USER
        and principal.refers_to(candidate)
    )


async def is_direct_member(group_id: UUID, user_id: UUID, conn: AsyncSession) -> bool:
    result = await conn.execute(
        select(GroupContains.membership_id)
        .where(GroupContains.group_id == group_id, GroupContains.member_id == user_id)
        .limit(1)
    )
    return result.first() is not None


async def can_view(principal: Principal, group: Group, conn: AsyncSession) -> bool:
    if principal.machine or principal.is_admin or not group.private_group:
        return True

    if principal.user_id is None:
        return False

    return await is_direct_member(group.group_id, principal.user_id, conn)


async def ensure_group_member(
    group_id: UUID, user_id: UUID | None, conn: AsyncSession
) -> None:
    """
    Raises
    ------
    MembershipForbidden
        If `user_id` is not a direct member of the group.
    """
    if user_id is None or not await is_direct_member(group_id, user_id, conn):
        raise MembershipForbidden(f"User {user_id} is not a member of group {group_id}")


async def ensure_can_view(
    principal: Principal,
    group: Group,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    if not await can_view(principal, group, conn):
        await log.awarning("membership.view.access_denied")
        raise MembershipForbidden("You are not allowed to view this group!")


async def ensure_can_add(
    principal: Principal,
    group: Group,
    candidate: MemberRef,
    membership_type: MembershipType,
    log: FilteringBoundLogger,
) -> None:
    if can_mutate(principal, group):
        return

    if is_self_register_eligible(principal, group, candidate, membership_type):
        await log.adebug("membership.add.self_register")
        return

    await log.awarning("membership.add.access_denied")
    raise MembershipForbidden("You are not allowed to perform this action!")


async def ensure_can_remove(
    principal: Principal,
    group: Group,
    member: MemberRef,
    log: FilteringBoundLogger,
) -> None:
    if can_mutate(principal, group):
        return

    if group.self_register and principal.refers_to(member):
        await log.adebug("membership.remove.self_register")
        return

    await log.awarning("membership.remove.access_denied")
    raise MembershipForbidden("You are not allowed to perform this action!")
