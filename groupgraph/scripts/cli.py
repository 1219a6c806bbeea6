"""
A simple CLI for administering the membership graph.
"""

import asyncio
import sys

from structlog import get_logger


async def count(group_id: str, include_sub_groups: bool) -> int:
    from groupgraph.config.settings import Settings
    from groupgraph.service import lookup as lookup_service

    manager = Settings().async_manager()

    try:
        async with manager.session() as conn:
            return await lookup_service.count_members(
                group_id=group_id,
                include_sub_groups=include_sub_groups,
                conn=conn,
                log=get_logger(),
            )
    finally:
        await manager.dispose()


async def groups_of(member_id: str) -> list[str]:
    from groupgraph.config.settings import Settings
    from groupgraph.service import lookup as lookup_service

    manager = Settings().async_manager()

    try:
        async with manager.session() as conn:
            return await lookup_service.get_member_groups(
                member=member_id, conn=conn, log=get_logger()
            )
    finally:
        await manager.dispose()


def main():
    try:
        command = sys.argv[1]
    except IndexError:
        print(
            "Only supported commands are groupgraph setup, groupgraph count {group} "
            "[sub], or groupgraph groups-of {member}"
        )
        exit(1)

    if command == "setup":
        from groupgraph.config.settings import Settings

        Settings().sync_manager().create_all()

        print("Setup complete, membership tables created")
        exit(0)

    if command == "count":
        include_sub_groups = len(sys.argv) > 3 and sys.argv[3] == "sub"
        print(asyncio.run(count(sys.argv[2], include_sub_groups)))
        exit(0)

    if command == "groups-of":
        for old_id in asyncio.run(groups_of(sys.argv[2])):
            print(old_id)
        exit(0)

    print(f"Unknown command {command}")
    exit(1)
