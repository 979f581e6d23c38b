"""Unit tests for EventStore payload handling."""

import uuid
from datetime import datetime, timezone

import pytest

from opslog.kernel.events.event_store import EventStore
from opslog.kernel.models import EventType, SystemRole


class TestPayloadSerialization:
    def setup_method(self):
        self.store = EventStore(session=None, enabled=True)

    def test_sets_become_sorted_lists(self):
        payload = self.store._serialize_payload({"account_ids": {5, 2, 9}})
        assert payload == {"account_ids": [2, 5, 9]}

    def test_enums_and_datetimes(self):
        when = datetime(2026, 3, 14, 6, 30, tzinfo=timezone.utc)
        payload = self.store._serialize_payload({"role": SystemRole.ADMINISTRATOR, "at": when})
        assert payload == {"role": "ADMINISTRATOR", "at": when.isoformat()}

    def test_nested_values(self):
        event_id = uuid.uuid4()
        payload = self.store._serialize_payload({"target": {"ids": (1, 2), "event": event_id}})
        assert payload == {"target": {"ids": [1, 2], "event": str(event_id)}}


class TestDisabledStore:
    @pytest.mark.asyncio
    async def test_log_is_noop_when_disabled(self):
        store = EventStore(session=None, enabled=False)
        result = await store.log(
            event_type=EventType.LOG_CREATED,
            entity_type="log",
            entity_id=1,
        )
        assert result is None
