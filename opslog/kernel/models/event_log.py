"""
Immutable event log for the audit trail.

Every mutation the engine performs adds a row here inside the same
transaction, so the trail and the change commit or roll back together.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from opslog.kernel.models.base import Base, generate_uuid, utcnow


class EventType(str, Enum):
    """All event types for the audit log."""

    # Account events
    ACCOUNT_REGISTERED = "account.registered"

    # Group events
    GROUP_CREATED = "group.created"
    GROUP_DELETED = "group.deleted"
    GROUP_MEMBER_ADDED = "group.member_added"
    GROUP_MEMBER_REMOVED = "group.member_removed"
    SYSTEM_ROLE_GRANTED = "group.system_role_granted"
    SYSTEM_ROLE_REVOKED = "group.system_role_revoked"

    # Tag events
    TAG_CREATED = "tag.created"
    TAG_DELETED = "tag.deleted"

    # Log events
    LOG_CREATED = "log.created"
    LOG_REVISED = "log.revised"
    LOG_DELETED = "log.deleted"
    LOGS_BULK_DELETED = "log.bulk_deleted"


class EventLog(Base):
    """
    Append-only audit event.

    Rows are never updated or deleted, and entity_id carries no foreign key
    so events outlive the logs they describe.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Actor; None for bootstrap operations
    account_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_account_time", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        event_type = getattr(self.event_type, "value", self.event_type)
        return f"<EventLog {event_type} {self.entity_type}:{self.entity_id}>"
