"""
UUID creation and parsing. uuid7 is used for all canonical identifiers so that
they sort by creation time; it is not part of the python standard as of 3.12.
"""

from uuid import UUID as UUID

from uuid_extensions import uuid7 as uuid7


def parse_uuid(value: str | UUID) -> UUID | None:
    """
    Interpret `value` as a canonical identifier, returning None when it is
    not in UUID format (i.e. it is a legacy identifier).
    """
    if isinstance(value, UUID):
        return value

    try:
        return UUID(str(value).strip())
    except ValueError:
        return None


__ALL__ = ["UUID", "uuid7", "parse_uuid"]
