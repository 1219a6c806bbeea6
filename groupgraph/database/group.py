"""
Group ORM
"""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from groupgraph.core.group import GroupData, GroupStatus
from groupgraph.core.uuid import UUID, uuid7


class Group(SQLModel, table=True):
    group_id: UUID = Field(primary_key=True, default_factory=uuid7)
    # Identifier in the legacy system of record; groups without one are
    # excluded from the legacy-facing aggregate queries.
    old_id: str | None = Field(default=None, unique=True, index=True)

    name: str
    status: str = Field(default=GroupStatus.ACTIVE.value, index=True)
    private_group: bool = False
    self_register: bool = False
    organization_id: str | None = Field(default=None, index=True)

    created_at: datetime | None = Field(
        sa_column=Column(DateTime(timezone=True)), default=None
    )

    @property
    def active(self) -> bool:
        return self.status == GroupStatus.ACTIVE.value

    def to_core(self) -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object.
        """
        return GroupData(
            group_id=self.group_id,
            old_id=self.old_id,
            name=self.name,
            status=GroupStatus(self.status),
            private_group=self.private_group,
            self_register=self.self_register,
            organization_id=self.organization_id,
            created_at=self.created_at,
        )
