"""
ORM for user information.
"""

from sqlmodel import Field, SQLModel

from groupgraph.core.user import UserData
from groupgraph.core.uuid import UUID, uuid7


class User(SQLModel, table=True):
    user_id: UUID = Field(primary_key=True, default_factory=uuid7)

    universal_uid: str | None = Field(default=None, unique=True, index=True)
    user_name: str | None = None

    def to_core(self) -> UserData:
        return UserData(
            user_id=self.user_id,
            universal_uid=self.universal_uid,
            user_name=self.user_name,
        )
