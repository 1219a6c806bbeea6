"""
Service layer for users
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from groupgraph.core.errors import Conflict, NotFound
from groupgraph.core.members import MemberById, MemberRef
from groupgraph.core.uuid import UUID
from groupgraph.database.user import User


class UserNotFound(NotFound):
    pass


class UserExistsError(Conflict):
    pass


async def create(
    conn: AsyncSession,
    log: FilteringBoundLogger,
    universal_uid: str | None = None,
    user_name: str | None = None,
) -> User:
    """
    Creates a user, if they do not exist.
    """
    log = log.bind(universal_uid=universal_uid, user_name=user_name)

    user = User(universal_uid=universal_uid, user_name=user_name)

    try:
        conn.add(user)
        await conn.flush()
    except IntegrityError:
        await log.ainfo("user.create.exists")
        raise UserExistsError(f"User with universal UID {universal_uid} already exists")

    await log.ainfo("user.created", user_id=user.user_id)

    return user


async def read_by_id(user_id: UUID, conn: AsyncSession) -> User:
    res = await conn.get(User, user_id)

    if res is None:
        raise UserNotFound(f"User with ID {user_id} not found in the database")

    return res


async def read_by_universal_uid(universal_uid: str, conn: AsyncSession) -> User:
    query = select(User).filter(User.universal_uid == universal_uid)
    res = (await conn.execute(query)).scalar_one_or_none()

    if res is None:
        raise UserNotFound(
            f"User with universal UID {universal_uid} not found in the database"
        )

    return res


async def read_by_ref(member: MemberRef, conn: AsyncSession) -> User:
    if isinstance(member, MemberById):
        return await read_by_id(user_id=member.member_id, conn=conn)

    return await read_by_universal_uid(universal_uid=member.legacy_id, conn=conn)
