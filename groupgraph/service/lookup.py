"""
Read-only membership queries: listing, single-edge lookup, member counts and
reverse lookup of the groups containing a member.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from structlog.typing import FilteringBoundLogger

from groupgraph.core.errors import BadRequest, NotFound
from groupgraph.core.group import GroupStatus
from groupgraph.core.members import (
    GroupMemberCount,
    MemberCountFilter,
    MemberRef,
    MembershipData,
    MembershipPage,
    MembershipType,
    member_ref,
)
from groupgraph.core.principal import Principal
from groupgraph.core.uuid import UUID
from groupgraph.database import graph
from groupgraph.database.group import Group
from groupgraph.database.membership import GroupContains
from groupgraph.database.user import User

from . import authorization
from . import groups as groups_service
from .membership import resolve_member_ids


class MembershipNotFound(NotFound):
    pass


class InvalidPageError(BadRequest):
    pass


def _membership_query(group_id: UUID):
    """
    Edges leaving `group_id`, alongside the legacy identifier of each member.
    """
    member_group = aliased(Group)

    return (
        select(GroupContains, User.universal_uid, member_group.old_id)
        .outerjoin(User, User.user_id == GroupContains.member_id)
        .outerjoin(member_group, member_group.group_id == GroupContains.member_id)
        .where(GroupContains.group_id == group_id)
    )


def _to_membership(
    edge: GroupContains,
    group: Group,
    universal_uid: str | None,
    member_old_id: str | None,
) -> MembershipData:
    return MembershipData(
        membership_id=edge.membership_id,
        group_id=group.group_id,
        group_old_id=group.old_id,
        group_name=group.name,
        created_at=edge.created_at,
        created_by=edge.created_by,
        member_id=edge.member_id,
        member_legacy_id=member_old_id if edge.is_group else universal_uid,
        membership_type=MembershipType(edge.membership_type),
    )


async def list_members(
    principal: Principal,
    group_id: str | UUID,
    page: int,
    per_page: int,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> MembershipPage:
    """
    A page of the direct members of a group.

    Parameters
    ----------
    page: int
        1-based page number. Pages past the end are empty, not an error.
    per_page: int
        Number of members per page.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    MembershipForbidden
        If the group is private and the principal is not a member.
    InvalidPageError
        If `page` or `per_page` is less than one.
    """
    log = log.bind(group_id=str(group_id), page=page, per_page=per_page)

    if page < 1 or per_page < 1:
        await log.ainfo("membership.list.invalid_page")
        raise InvalidPageError("page and per_page must be positive")

    group = await groups_service.read_by_ref(
        group_id,
        conn=conn,
        log=log,
        include_inactive=authorization.has_admin_visibility(principal),
    )
    await authorization.ensure_can_view(principal, group, conn, log)

    total = (
        await conn.execute(
            select(func.count(GroupContains.membership_id)).where(
                GroupContains.group_id == group.group_id
            )
        )
    ).scalar_one()

    items = []
    offset = (page - 1) * per_page

    if offset < total:
        rows = (
            await conn.execute(
                _membership_query(group.group_id)
                .order_by(GroupContains.membership_id)
                .offset(offset)
                .limit(per_page)
            )
        ).all()

        items = [
            _to_membership(edge, group, universal_uid, member_old_id)
            for edge, universal_uid, member_old_id in rows
        ]

    await log.adebug("membership.listed", total=total, number_of_items=len(items))

    return MembershipPage(items=items, total=total, page=page, per_page=per_page)


async def get_member(
    principal: Principal,
    group_id: str | UUID,
    member: str | UUID | MemberRef,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> MembershipData:
    """
    The direct membership edge between a group and a member.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    MembershipForbidden
        If the group is private and the principal is not a member.
    MembershipNotFound
        If the member is not directly in the group.
    """
    member = member_ref(member)
    log = log.bind(group_id=str(group_id), member=str(member))

    group = await groups_service.read_by_ref(
        group_id,
        conn=conn,
        log=log,
        include_inactive=authorization.has_admin_visibility(principal),
    )
    await authorization.ensure_can_view(principal, group, conn, log)

    member_ids = await resolve_member_ids(member, conn)

    row = None
    if member_ids:
        row = (
            await conn.execute(
                _membership_query(group.group_id)
                .where(GroupContains.member_id.in_(member_ids))
                .order_by(GroupContains.membership_type.desc())
                .limit(1)
            )
        ).first()

    if row is None:
        await log.ainfo("membership.not_found")
        raise MembershipNotFound("The member is not in the group")

    edge, universal_uid, member_old_id = row
    return _to_membership(edge, group, universal_uid, member_old_id)


async def count_members(
    group_id: str | UUID,
    include_sub_groups: bool,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> int:
    """
    Number of distinct users in a group: direct members only, or every user
    reachable through nested groups when `include_sub_groups` is set.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=str(group_id), include_sub_groups=include_sub_groups)
    group = await groups_service.read_by_ref(group_id, conn=conn, log=log)

    if include_sub_groups:
        source = graph.descendants(group.group_id)
    else:
        source = graph.direct_edges(group.group_id)

    count = (await conn.execute(graph.user_count(source))).scalar_one()

    await log.adebug("membership.counted", count=count)

    return count


async def list_groups_member_count(
    criteria: MemberCountFilter,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[GroupMemberCount]:
    """
    User counts for every active group with a legacy identifier, ordered by
    that identifier.

    `criteria.universal_uid` restricts the result to groups containing that
    user, and `criteria.organization_id` to groups of that organization; both
    apply when both are given. Membership of the user is direct or transitive
    following `criteria.include_sub_groups`, as are the counts.
    """
    log = log.bind(**criteria.model_dump())

    if criteria.include_sub_groups:
        source = graph.descendants()
    else:
        source = graph.direct_edges()

    query = graph.group_user_counts(source)

    if criteria.universal_uid is not None:
        user_id = (
            select(User.user_id)
            .where(User.universal_uid == criteria.universal_uid)
            .scalar_subquery()
        )
        query = query.where(
            Group.group_id.in_(
                select(source.c.root_id).where(source.c.node_id == user_id)
            )
        )

    if criteria.organization_id is not None:
        query = query.where(Group.organization_id == criteria.organization_id)

    rows = (await conn.execute(query)).all()

    counts = [
        GroupMemberCount(group_id=group_id, old_id=old_id, count=count)
        for group_id, old_id, count in rows
    ]

    await log.adebug("membership.groups_counted", number_of_groups=len(counts))

    return counts


async def get_member_groups(
    member: str | UUID | MemberRef,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[str]:
    """
    Legacy identifiers of the active groups that contain `member`, directly or
    through nested groups, in order. A legacy identifier shared by a user and a
    group covers both.
    """
    member = member_ref(member)
    log = log.bind(member=str(member))

    member_ids = await resolve_member_ids(member, conn)

    if not member_ids:
        await log.ainfo("membership.member_groups.member_not_found")
        return []

    reach = graph.ancestors(member_ids)

    rows = await conn.execute(
        select(Group.old_id)
        .join(reach, reach.c.node_id == Group.group_id)
        .where(Group.old_id.is_not(None), Group.status == GroupStatus.ACTIVE.value)
        .distinct()
        .order_by(Group.old_id)
    )
    old_ids = list(rows.scalars().all())

    await log.adebug("membership.member_groups", number_of_groups=len(old_ids))

    return old_ids
