"""
The acting principal for membership operations.
"""

from pydantic import BaseModel, Field

from groupgraph.core.members import MemberById, MemberRef
from groupgraph.core.uuid import UUID

ADMIN_GRANT = "admin"


class Principal(BaseModel):
    user_id: UUID | None = None
    universal_uid: str | None = None
    grants: set[str] = Field(default_factory=set)
    # The distinguished machine-to-machine principal, which bypasses all
    # authorization checks.
    machine: bool = False

    @classmethod
    def system(cls) -> "Principal":
        return cls(machine=True)

    @property
    def is_admin(self) -> bool:
        return ADMIN_GRANT in self.grants

    def refers_to(self, member: MemberRef) -> bool:
        """
        Check whether `member` identifies this principal.
        """
        if isinstance(member, MemberById):
            return self.user_id is not None and member.member_id == self.user_id

        return self.universal_uid is not None and member.legacy_id == self.universal_uid
