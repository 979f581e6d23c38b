"""
Exception types raised by the opslog engine.

Authorization failures have no exception type: they surface as False,
zero counts or empty lists so callers cannot tell "not allowed" from
"does not exist".
"""


class OpsLogError(Exception):
    """Base exception for engine errors."""

    pass


class NotFoundError(OpsLogError, LookupError):
    """A referenced account, group, tag or log does not exist."""

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class InvariantViolationError(OpsLogError, ValueError):
    """An operation would break a model invariant. Nothing was written."""

    pass


class UniquenessConflictError(OpsLogError, ValueError):
    """A unique value (email, username, group name, system role) is taken."""

    pass
