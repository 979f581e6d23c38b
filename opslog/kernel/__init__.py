"""
Stable Kernel Layer

Foundational components every engine operation is built from:
- Identity Core (accounts, user-defined and system-defined groups)
- Revision Store (append-only logs, edits recorded as child rows)
- Permission Core (group-scoped visibility, admin-only deletion)
- Immutable Event Log (mutations recorded in the same transaction)

Architectural Invariants:
- A log row is never updated; an edit is a new row pointing at its parent
- Visibility is checked in the query, before rows leave the database
- Authorization failures look the same as "nothing matched"
"""

from opslog.kernel.models import (
    Account,
    EventLog,
    EventType,
    Group,
    GroupKind,
    Log,
    SystemGroup,
    SystemRole,
    Tag,
    UserGroup,
)

__all__ = [
    # Identity
    "Account",
    "Group",
    "GroupKind",
    "SystemGroup",
    "SystemRole",
    "UserGroup",
    # Logs & tags
    "Log",
    "Tag",
    # Event Log
    "EventLog",
    "EventType",
]
