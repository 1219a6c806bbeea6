"""
Path and reachability queries over the GroupContains edges.

All traversals are recursive common table expressions evaluated by the
database, so they see exactly the state of the current transaction. They use
UNION rather than UNION ALL: each (root, node) pair is produced at most once,
which both de-duplicates users reachable along several paths and guarantees
termination should a cycle ever exist.
"""

from sqlalchemy import CTE, Select, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from groupgraph.core.group import GroupStatus
from groupgraph.core.members import MembershipType
from groupgraph.core.uuid import UUID

from .group import Group
from .membership import GroupContains

GROUP = MembershipType.GROUP.value
USER = MembershipType.USER.value


def direct_edges(root_group_id: UUID | None = None) -> CTE:
    """
    Edges leaving `root_group_id` (or every group), in the same
    (root_id, node_id, node_type) shape as `descendants`.
    """
    query = select(
        GroupContains.group_id.label("root_id"),
        GroupContains.member_id.label("node_id"),
        GroupContains.membership_type.label("node_type"),
    )

    if root_group_id is not None:
        query = query.where(GroupContains.group_id == root_group_id)

    return query.cte("direct_edges")


def descendants(root_group_id: UUID | None = None) -> CTE:
    """
    Every node reachable from `root_group_id` (or from every group) through
    one or more chained edges, as (root_id, node_id, node_type) rows.
    """
    edge = aliased(GroupContains)

    base = select(
        GroupContains.group_id.label("root_id"),
        GroupContains.member_id.label("node_id"),
        GroupContains.membership_type.label("node_type"),
    )

    if root_group_id is not None:
        base = base.where(GroupContains.group_id == root_group_id)

    reach = base.cte("descendants", recursive=True)

    return reach.union(
        select(reach.c.root_id, edge.member_id, edge.membership_type).where(
            edge.group_id == reach.c.node_id, reach.c.node_type == GROUP
        )
    )


def ancestors(member_ids: list[UUID]) -> CTE:
    """
    Every group that contains any of `member_ids` through one or more chained
    edges.
    """
    edge = aliased(GroupContains)

    reach = (
        select(GroupContains.group_id.label("node_id"))
        .where(GroupContains.member_id.in_(member_ids))
        .cte("ancestors", recursive=True)
    )

    return reach.union(select(edge.group_id).where(edge.member_id == reach.c.node_id))


async def path_exists(
    from_group_id: UUID, to_group_id: UUID, conn: AsyncSession
) -> bool:
    """
    Whether a directed path of Group memberships leads from `from_group_id`
    to `to_group_id`.
    """
    edge = aliased(GroupContains)

    reach = (
        select(GroupContains.member_id.label("node_id"))
        .where(
            GroupContains.group_id == from_group_id,
            GroupContains.membership_type == GROUP,
        )
        .cte("reach", recursive=True)
    )
    reach = reach.union(
        select(edge.member_id).where(
            edge.group_id == reach.c.node_id, edge.membership_type == GROUP
        )
    )

    result = await conn.execute(
        select(reach.c.node_id).where(reach.c.node_id == to_group_id).limit(1)
    )
    return result.first() is not None


def user_count(source: CTE) -> Select:
    """
    Count distinct users in a (root_id, node_id, node_type) source.
    """
    return select(func.count(distinct(source.c.node_id))).where(
        source.c.node_type == USER
    )


def group_user_counts(source: CTE) -> Select:
    """
    Distinct user counts per active group that has a legacy identifier,
    ordered by that identifier. Groups without users do not appear.
    """
    return (
        select(
            Group.group_id,
            Group.old_id,
            func.count(distinct(source.c.node_id)).label("count"),
        )
        .join(source, source.c.root_id == Group.group_id)
        .where(
            source.c.node_type == USER,
            Group.old_id.is_not(None),
            Group.status == GroupStatus.ACTIVE.value,
        )
        .group_by(Group.group_id, Group.old_id)
        .order_by(Group.old_id)
    )
