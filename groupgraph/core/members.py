"""
Membership edge models and member references.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from groupgraph.core.uuid import UUID, parse_uuid


class MembershipType(str, Enum):
    USER = "User"
    GROUP = "Group"


class MemberById(BaseModel):
    """
    A member addressed by its canonical identifier.
    """

    kind: Literal["id"] = "id"
    member_id: UUID

    def __str__(self) -> str:
        return str(self.member_id)


class MemberByLegacyId(BaseModel):
    """
    A member addressed by its legacy identifier (`universal_uid` for users,
    `old_id` for groups).
    """

    kind: Literal["legacy"] = "legacy"
    legacy_id: str

    def __str__(self) -> str:
        return self.legacy_id


MemberRef = Annotated[MemberById | MemberByLegacyId, Field(discriminator="kind")]


def member_ref(
    value: "str | UUID | MemberRef",
) -> MemberRef:
    """
    Build a member reference from a raw identifier. Anything in UUID format
    is taken to be canonical, everything else is a legacy identifier.

    Raises
    ------
    ValueError
        If the identifier is empty.
    """
    if isinstance(value, (MemberById, MemberByLegacyId)):
        return value

    canonical = parse_uuid(value)

    if canonical is not None:
        return MemberById(member_id=canonical)

    value = str(value).strip()

    if not value:
        raise ValueError("Member identifier must not be empty")

    return MemberByLegacyId(legacy_id=value)


class MembershipData(BaseModel):
    membership_id: UUID
    group_id: UUID
    group_old_id: str | None
    group_name: str
    created_at: datetime
    # None when the edge was created by the system principal
    created_by: UUID | None
    member_id: UUID
    member_legacy_id: str | None
    membership_type: MembershipType


class RemovedMembershipData(BaseModel):
    group_id: UUID
    group_old_id: str | None
    group_name: str
    # Legacy identifier first for groups, canonical identifier for users
    member_id: str


class MembershipPage(BaseModel):
    items: list[MembershipData]
    total: int
    page: int
    per_page: int


class GroupMemberCount(BaseModel):
    group_id: UUID
    old_id: str
    count: int


class MemberCountFilter(BaseModel):
    include_sub_groups: bool = False
    universal_uid: str | None = None
    organization_id: str | None = None
