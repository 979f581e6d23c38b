"""
Audit trail infrastructure.

Provides append-only audit logging with immutable events.
"""

from opslog.kernel.events.event_store import EventStore

__all__ = [
    "EventStore",
]
