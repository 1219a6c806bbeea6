"""
Core group data models.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from groupgraph.core.uuid import UUID


class GroupStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class GroupData(BaseModel):
    group_id: UUID
    old_id: str | None
    name: str
    status: GroupStatus
    private_group: bool
    self_register: bool
    organization_id: str | None
    created_at: datetime | None
