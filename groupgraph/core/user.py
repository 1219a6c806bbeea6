"""
A shared user object that is serialized.
"""

from pydantic import BaseModel

from groupgraph.core.uuid import UUID


class UserData(BaseModel):
    user_id: UUID
    # Identifier from the legacy system of record
    universal_uid: str | None
    user_name: str | None
