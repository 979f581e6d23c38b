"""Integration tests for group-scoped visibility."""

from datetime import timedelta

import pytest

from opslog.kernel.permissions.visibility import VisibilityFilter
from opslog.schemas import LogContent, LogFilter


@pytest.fixture
def visibility(db_session) -> VisibilityFilter:
    return VisibilityFilter(db_session)


class TestVisibleLogs:
    @pytest.mark.asyncio
    async def test_shared_group_sees_log(self, visibility, revisions, crew, event_time):
        alice, bob, carol = crew
        log = await revisions.create_original(alice, event_time, [], "Pump trip")

        assert [entry.id for entry in await visibility.list_visible_logs(bob)] == [log.id]
        assert await visibility.list_visible_logs(carol) == []
        assert await visibility.is_visible(bob, log.id) is True
        assert await visibility.is_visible(carol, log.id) is False

    @pytest.mark.asyncio
    async def test_no_groups_sees_nothing(self, visibility, revisions, alice, event_time):
        await revisions.create_original(alice, event_time, [], "Pump trip")
        assert await visibility.list_visible_logs(alice) == []

    @pytest.mark.asyncio
    async def test_visibility_follows_membership(self, visibility, identity, revisions, crew, operations, event_time):
        alice, _, carol = crew
        log = await revisions.create_original(alice, event_time, [], "Pump trip")

        await identity.add_account_to_group(carol, operations)
        assert await visibility.is_visible(carol, log.id) is True

        await identity.remove_account_from_group(carol, operations)
        assert await visibility.is_visible(carol, log.id) is False

    @pytest.mark.asyncio
    async def test_newest_event_first(self, visibility, revisions, crew, event_time):
        alice, bob, _ = crew
        early = await revisions.create_original(alice, event_time, [], "Shift start")
        late = await revisions.create_original(bob, event_time + timedelta(hours=2), [], "Pump trip")

        listed = await visibility.list_visible_logs(alice)

        assert [entry.id for entry in listed] == [late.id, early.id]

    @pytest.mark.asyncio
    async def test_revisions_are_listed_by_reviser(self, visibility, revisions, crew, event_time):
        alice, bob, carol = crew
        original = await revisions.create_original(alice, event_time, [], "Pump trip")
        revision = await revisions.revise_log(original, bob, LogContent(title="Pump trip, P-101"))

        ids = {entry.id for entry in await visibility.list_visible_logs(alice)}

        assert ids == {original.id, revision.id}
        originals = await visibility.list_visible_logs(alice, LogFilter(originals_only=True))
        assert [entry.id for entry in originals] == [original.id]


class TestFilters:
    @pytest.mark.asyncio
    async def test_title_contains_ignores_case(self, visibility, revisions, crew, event_time):
        alice, bob, _ = crew
        failure = await revisions.create_original(alice, event_time, [], "Generator Failure")
        await revisions.create_original(alice, event_time, [], "Pump trip")

        found = await visibility.list_visible_logs(bob, LogFilter(title_contains="generator"))

        assert [entry.id for entry in found] == [failure.id]

    @pytest.mark.asyncio
    async def test_exact_title_is_case_sensitive(self, visibility, revisions, crew, event_time):
        alice, bob, _ = crew
        await revisions.create_original(alice, event_time, [], "Generator Failure")
        assert await visibility.list_visible_logs(bob, LogFilter(title="generator failure")) == []

    @pytest.mark.asyncio
    async def test_description_contains(self, visibility, revisions, crew, event_time):
        alice, bob, _ = crew
        log = await revisions.create_original(alice, event_time, [], "Pump trip", "Low SUCTION pressure")
        found = await visibility.list_visible_logs(bob, LogFilter(description_contains="suction"))
        assert [entry.id for entry in found] == [log.id]

    @pytest.mark.asyncio
    async def test_tag_filters(self, visibility, revisions, tags, crew, event_time):
        alice, bob, _ = crew
        pumps = await tags.create_tag("Pumps")
        valves = await tags.create_tag("Valves")
        pump_log = await revisions.create_original(alice, event_time, [pumps], "Pump trip")
        valve_log = await revisions.create_original(alice, event_time, [valves], "Valve stuck")

        by_one = await visibility.list_visible_logs(bob, LogFilter(tag_id=pumps.id))
        by_any = await visibility.list_visible_logs(bob, LogFilter(tag_ids=[pumps.id, valves.id]))

        assert [entry.id for entry in by_one] == [pump_log.id]
        assert {entry.id for entry in by_any} == {pump_log.id, valve_log.id}
        assert await visibility.list_visible_logs(bob, LogFilter(tag_ids=[])) == []

    @pytest.mark.asyncio
    async def test_time_filters(self, visibility, revisions, crew, event_time):
        alice, bob, _ = crew
        early = await revisions.create_original(alice, event_time, [], "Shift start")
        late = await revisions.create_original(alice, event_time + timedelta(hours=8), [], "Shift end")

        in_range = await visibility.list_visible_logs(
            bob,
            LogFilter(time_from=event_time + timedelta(hours=1), time_to=event_time + timedelta(hours=9)),
        )
        at_time = await visibility.list_visible_logs(bob, LogFilter(at_time=event_time))

        assert [entry.id for entry in in_range] == [late.id]
        assert [entry.id for entry in at_time] == [early.id]

    @pytest.mark.asyncio
    async def test_creator_filters(self, visibility, identity, revisions, crew, maintenance, event_time):
        alice, bob, carol = crew
        await identity.add_account_to_group(bob, maintenance)
        by_alice = await revisions.create_original(alice, event_time, [], "Pump trip")
        by_carol = await revisions.create_original(carol, event_time, [], "Valve stuck")

        assert [entry.id for entry in await visibility.list_visible_logs(bob, LogFilter(account_id=alice.id))] == [by_alice.id]
        assert [entry.id for entry in await visibility.list_visible_logs(bob, LogFilter(group_id=maintenance.id))] == [by_carol.id]
        both = await visibility.list_visible_logs(bob, LogFilter(account_ids=[alice.id, carol.id]))
        assert {entry.id for entry in both} == {by_alice.id, by_carol.id}
        # alice shares nothing with carol, so the filter cannot widen her view
        assert await visibility.list_visible_logs(alice, LogFilter(account_id=carol.id)) == []


class TestVisibleAccountsAndGroups:
    @pytest.mark.asyncio
    async def test_accounts_sharing_a_group(self, visibility, crew):
        alice, bob, carol = crew
        assert [a.id for a in await visibility.list_visible_accounts(alice)] == [alice.id, bob.id]
        assert [a.id for a in await visibility.list_visible_accounts(carol)] == [carol.id]

    @pytest.mark.asyncio
    async def test_groups_of_requester(self, visibility, crew, operations):
        alice, _, _ = crew
        assert [g.id for g in await visibility.list_visible_groups(alice)] == [operations.id]

    @pytest.mark.asyncio
    async def test_filter_visible_keeps_order(self, visibility, revisions, crew, event_time):
        alice, _, carol = crew
        first = await revisions.create_original(alice, event_time, [], "A")
        hidden = await revisions.create_original(carol, event_time, [], "B")
        last = await revisions.create_original(alice, event_time, [], "C")

        kept = await visibility.filter_visible(alice, [last, hidden, first])

        assert [entry.id for entry in kept] == [last.id, first.id]
