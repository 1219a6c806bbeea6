"""
Error taxonomy. Concrete errors are defined alongside the service code that
raises them and subclass one of these, so that upstream layers can map them
to transport-specific codes without knowing every case.
"""


class NotFound(Exception):
    """A group, user, or membership edge does not exist."""


class Forbidden(Exception):
    """The acting principal may not perform this operation."""


class BadRequest(Exception):
    """Malformed or self-referential input."""


class Conflict(Exception):
    """The change would violate a graph invariant."""
