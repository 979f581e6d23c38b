"""
Event Store service for append-only audit logging.

Mutating services call EventStore.log before their transaction commits.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from opslog.config import get_settings
from opslog.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.LOG_REVISED,
            entity_type="log",
            entity_id=revision.id,
            account_id=reviser.id,
            payload={"parent_id": parent.id},
        )
    """

    def __init__(self, session: AsyncSession, enabled: Optional[bool] = None):
        self.session = session
        self.enabled = get_settings().audit_enabled if enabled is None else enabled

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: Optional[int],
        account_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[EventLog]:
        """
        Add an event to the audit log in the caller's transaction.

        Args:
            event_type: The type of event
            entity_type: The type of entity (account, group, tag, log)
            entity_id: The ID of the entity
            account_id: The account that triggered the event
            payload: Additional event data

        Returns:
            The EventLog row, or None when auditing is disabled
        """
        if not self.enabled:
            return None

        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            account_id=account_id,
            payload=self._serialize_payload(payload) if payload else {},
        )
        self.session.add(event)
        # Caller flushes/commits with the rest of its unit of work
        return event

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: int,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Events for one entity, newest first."""
        query = select(EventLog).where(
            EventLog.entity_type == entity_type,
            EventLog.entity_id == entity_id,
        )
        if event_types:
            query = query.where(EventLog.event_type.in_([e.value for e in event_types]))

        query = query.order_by(desc(EventLog.created_at)).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_account_activity(
        self,
        account_id: int,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Events triggered by an account, newest first."""
        query = select(EventLog).where(EventLog.account_id == account_id)
        if since:
            query = query.where(EventLog.created_at >= since)

        query = query.order_by(desc(EventLog.created_at)).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_events(
        self,
        entity_type: Optional[str] = None,
        event_type: Optional[EventType] = None,
        account_id: Optional[int] = None,
    ) -> int:
        """Count events matching the given criteria."""
        query = select(func.count(EventLog.id))

        if entity_type:
            query = query.where(EventLog.entity_type == entity_type)
        if event_type:
            query = query.where(EventLog.event_type == event_type.value)
        if account_id is not None:
            query = query.where(EventLog.account_id == account_id)

        result = await self.session.execute(query)
        return result.scalar() or 0

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        return {key: self._serialize_value(value) for key, value in payload.items()}

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, dict):
            return self._serialize_payload(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value) if isinstance(value, (set, frozenset)) else value
            return [self._serialize_value(v) for v in items]
        if hasattr(value, "value"):  # Enum members
            return value.value
        return value
