"""
Permission Core - group-scoped visibility and admin-only deletion.
"""

from opslog.kernel.permissions.visibility import (
    VisibilityFilter,
    apply_log_filter,
    creator_in_group,
    creator_shares_group,
)
from opslog.kernel.permissions.deletion_policy import AdministrativeDeletionPolicy

__all__ = [
    "VisibilityFilter",
    "AdministrativeDeletionPolicy",
    "apply_log_filter",
    "creator_in_group",
    "creator_shares_group",
]
