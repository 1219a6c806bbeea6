"""
Meta functionality for the database.
"""

from .group import Group
from .membership import GroupContains
from .user import User

ALL_TABLES = (
    Group,
    GroupContains,
    User,
)
