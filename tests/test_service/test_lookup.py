"""
Tests the membership query service.
"""

import pytest

from groupgraph.core.group import GroupStatus
from groupgraph.core.members import MemberCountFilter, MembershipType
from groupgraph.core.principal import Principal
from groupgraph.core.uuid import uuid7
from groupgraph.service import authorization
from groupgraph.service import lookup as lookup_service
from groupgraph.service.authorization import MembershipForbidden

GROUP = MembershipType.GROUP


@pytest.mark.asyncio(loop_scope="session")
async def test_list_members_pagination(
    session_manager, logger, admin, make_group, make_user, add
):
    group = await make_group(name="paged")
    users = [await make_user() for _ in range(5)]
    for user in users:
        await add(group.group_id, user.user_id)

    async with session_manager.session() as conn:
        page = await lookup_service.list_members(
            principal=admin,
            group_id=group.group_id,
            page=3,
            per_page=10,
            conn=conn,
            log=logger,
        )

        assert page.items == []
        assert page.total == 5
        assert page.page == 3
        assert page.per_page == 10

        seen = []
        for number in (1, 2, 3):
            page = await lookup_service.list_members(
                principal=admin,
                group_id=group.old_id,
                page=number,
                per_page=2,
                conn=conn,
                log=logger,
            )
            assert page.total == 5
            seen.extend(page.items)

        assert len(seen) == 5
        assert {m.member_id for m in seen} == {u.user_id for u in users}
        assert {m.member_legacy_id for m in seen} == {u.universal_uid for u in users}
        assert all(m.group_name == "paged" for m in seen)

        with pytest.raises(lookup_service.InvalidPageError):
            await lookup_service.list_members(
                principal=admin,
                group_id=group.group_id,
                page=0,
                per_page=10,
                conn=conn,
                log=logger,
            )


@pytest.mark.asyncio(loop_scope="session")
async def test_private_group_visibility(
    session_manager, logger, admin, make_group, make_user, add
):
    private = await make_group(private_group=True)
    public = await make_group()
    member = await make_user()
    outsider = await make_user()

    await add(private.group_id, member.user_id)
    await add(public.group_id, member.user_id)

    member_principal = Principal(user_id=member.user_id)
    outsider_principal = Principal(user_id=outsider.user_id)

    async with session_manager.session() as conn:
        for principal in (admin, Principal.system(), member_principal):
            page = await lookup_service.list_members(
                principal=principal,
                group_id=private.group_id,
                page=1,
                per_page=10,
                conn=conn,
                log=logger,
            )
            assert page.total == 1

        assert await authorization.can_view(member_principal, private, conn)
        assert await authorization.can_view(outsider_principal, public, conn)
        assert not await authorization.can_view(outsider_principal, private, conn)

        await authorization.ensure_group_member(private.group_id, member.user_id, conn)

        for user_id in (outsider.user_id, None):
            with pytest.raises(MembershipForbidden):
                await authorization.ensure_group_member(private.group_id, user_id, conn)

        with pytest.raises(MembershipForbidden):
            await lookup_service.list_members(
                principal=outsider_principal,
                group_id=private.group_id,
                page=1,
                per_page=10,
                conn=conn,
                log=logger,
            )

        with pytest.raises(MembershipForbidden):
            await lookup_service.get_member(
                principal=outsider_principal,
                group_id=private.group_id,
                member=member.user_id,
                conn=conn,
                log=logger,
            )

        membership = await lookup_service.get_member(
            principal=outsider_principal,
            group_id=public.group_id,
            member=member.user_id,
            conn=conn,
            log=logger,
        )
        assert membership.member_id == member.user_id

        with pytest.raises(lookup_service.MembershipNotFound):
            await lookup_service.get_member(
                principal=outsider_principal,
                group_id=public.group_id,
                member=outsider.user_id,
                conn=conn,
                log=logger,
            )


async def build_hierarchy(make_group, make_user, add, organization_id):
    """
    top -> u1, middle, side
    middle -> u1, u2
    side -> middle, u3
    dormant (inactive) -> u2
    unnamed (no legacy id) -> u2
    """
    prefix = f"org-{uuid7().hex}"
    top = await make_group(old_id=f"{prefix}-1", organization_id=organization_id)
    middle = await make_group(old_id=f"{prefix}-2", organization_id=organization_id)
    side = await make_group(old_id=f"{prefix}-3", organization_id=organization_id)
    dormant = await make_group(
        old_id=f"{prefix}-4",
        organization_id=organization_id,
        status=GroupStatus.INACTIVE,
    )
    unnamed = await make_group(old_id=None, organization_id=organization_id)

    u1, u2, u3 = [await make_user() for _ in range(3)]

    await add(top.group_id, u1.user_id)
    await add(top.group_id, middle.group_id, GROUP)
    await add(top.group_id, side.group_id, GROUP)
    await add(middle.group_id, u1.user_id)
    await add(middle.group_id, u2.user_id)
    await add(side.group_id, middle.group_id, GROUP)
    await add(side.group_id, u3.user_id)
    await add(dormant.group_id, u2.user_id)
    await add(unnamed.group_id, u2.user_id)

    return dict(top=top, middle=middle, side=side, dormant=dormant), (u1, u2, u3)


@pytest.mark.asyncio(loop_scope="session")
async def test_count_members(session_manager, logger, make_group, make_user, add):
    groups, _ = await build_hierarchy(make_group, make_user, add, str(uuid7()))

    async with session_manager.session() as conn:

        async def count(group, include_sub_groups):
            return await lookup_service.count_members(
                group_id=group.group_id,
                include_sub_groups=include_sub_groups,
                conn=conn,
                log=logger,
            )

        assert await count(groups["top"], False) == 1
        # u1 is reachable directly and through middle, counted once
        assert await count(groups["top"], True) == 3
        assert await count(groups["side"], False) == 1
        assert await count(groups["side"], True) == 3
        assert await count(groups["middle"], True) == 2


@pytest.mark.asyncio(loop_scope="session")
async def test_list_groups_member_count(
    session_manager, logger, make_group, make_user, add
):
    organization_id = str(uuid7())
    groups, (u1, u2, u3) = await build_hierarchy(
        make_group, make_user, add, organization_id
    )
    top, middle, side = groups["top"], groups["middle"], groups["side"]

    async with session_manager.session() as conn:

        async def counts(**kwargs):
            result = await lookup_service.list_groups_member_count(
                criteria=MemberCountFilter(**kwargs), conn=conn, log=logger
            )
            return [(x.old_id, x.count) for x in result]

        assert await counts(organization_id=organization_id) == [
            (top.old_id, 1),
            (middle.old_id, 2),
            (side.old_id, 1),
        ]

        assert await counts(
            organization_id=organization_id, include_sub_groups=True
        ) == [
            (top.old_id, 3),
            (middle.old_id, 2),
            (side.old_id, 3),
        ]

        # Direct membership of u2 is only in middle among the active groups
        assert await counts(universal_uid=u2.universal_uid) == [(middle.old_id, 2)]

        assert await counts(
            universal_uid=u2.universal_uid, include_sub_groups=True
        ) == [
            (top.old_id, 3),
            (middle.old_id, 2),
            (side.old_id, 3),
        ]

        assert await counts(
            universal_uid=u3.universal_uid,
            organization_id=organization_id,
            include_sub_groups=True,
        ) == [
            (top.old_id, 3),
            (side.old_id, 3),
        ]

        assert await counts(universal_uid="uid-does-not-exist") == []

        everything = await counts()
        assert (top.old_id, 1) in everything
        assert groups["dormant"].old_id not in [old_id for old_id, _ in everything]


@pytest.mark.asyncio(loop_scope="session")
async def test_get_member_groups(session_manager, logger, make_group, make_user, add):
    groups, (u1, u2, u3) = await build_hierarchy(
        make_group, make_user, add, str(uuid7())
    )
    top, middle, side = groups["top"], groups["middle"], groups["side"]

    async with session_manager.session() as conn:
        assert await lookup_service.get_member_groups(
            member=u2.user_id, conn=conn, log=logger
        ) == [top.old_id, middle.old_id, side.old_id]

        assert await lookup_service.get_member_groups(
            member=u3.universal_uid, conn=conn, log=logger
        ) == [top.old_id, side.old_id]

        # Groups are members too
        assert await lookup_service.get_member_groups(
            member=middle.group_id, conn=conn, log=logger
        ) == [top.old_id, side.old_id]

        assert (
            await lookup_service.get_member_groups(
                member="uid-does-not-exist", conn=conn, log=logger
            )
            == []
        )
