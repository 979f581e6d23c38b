"""
Kernel Data Models

SQLAlchemy models for accounts, groups, tags, logs and the audit trail.
"""

from opslog.kernel.models.base import Base, CreatedAtMixin, as_utc, generate_uuid, utcnow
from opslog.kernel.models.group import Group, GroupKind, SystemGroup, SystemRole, UserGroup
from opslog.kernel.models.account import Account, account_groups
from opslog.kernel.models.tag import Tag
from opslog.kernel.models.log import Log, log_tags
from opslog.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "CreatedAtMixin",
    "as_utc",
    "generate_uuid",
    "utcnow",
    # Identity
    "Account",
    "account_groups",
    "Group",
    "GroupKind",
    "SystemGroup",
    "SystemRole",
    "UserGroup",
    # Tags
    "Tag",
    # Logs
    "Log",
    "log_tags",
    # Event Log
    "EventLog",
    "EventType",
]
