"""
ORM for membership edges.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from groupgraph.core.members import MembershipType
from groupgraph.core.uuid import UUID, uuid7


class GroupContains(SQLModel, table=True):
    """
    A directed edge from a containing group to a user or group. Edges are
    never updated in place; they are created and deleted whole.
    """

    __tablename__ = "group_contains"
    __table_args__ = (
        UniqueConstraint("group_id", "member_id", name="uq_group_contains_pair"),
    )

    membership_id: UUID = Field(primary_key=True, default_factory=uuid7)

    group_id: UUID = Field(foreign_key="group.group_id", ondelete="CASCADE", index=True)
    # Either a user_id or a group_id, depending on membership_type.
    member_id: UUID = Field(index=True)
    membership_type: str

    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    created_by: Optional[UUID] = None

    @property
    def is_group(self) -> bool:
        return self.membership_type == MembershipType.GROUP.value
