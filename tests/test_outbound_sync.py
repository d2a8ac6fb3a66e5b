"""
Integration tests: local → Discord push, and the CalendarSynchronizer wrapper.
"""

import pytest

from guild_calendar_sync.models import EventNotFoundError
from guild_calendar_sync.models import ProviderError
from guild_calendar_sync.rules import CanonicalRule
from guild_calendar_sync.rules import Frequency
from guild_calendar_sync.rules import NthWeekday
from guild_calendar_sync.series import SeriesManager
from guild_calendar_sync.sync import CalendarSynchronizer
from guild_calendar_sync.sync.inbound import run_inbound
from guild_calendar_sync.sync.outbound import build_payload
from guild_calendar_sync.sync.outbound import push_event
from tests.conftest import GROUP_NAME
from tests.conftest import make_draft
from tests.conftest import make_remote_event
from tests.conftest import utc
from tests.fake_client import FakeDiscordClient


def _monthly_rule():
    return CanonicalRule(Frequency.MONTHLY, utc(2026, 3, 2, 18, 0), by_n_weekday=NthWeekday(1, 0))


class TestBuildPayload:
    def test_single_event(self, store, group):
        event = store.create_event(make_draft(group.id, location_display_name="Room 4"))
        payload = build_payload(event, GROUP_NAME)
        assert payload == {
            "name": "Standup",
            "description": "Team standup\n\n```working-group-id=Outreach```",
            "scheduled_start_time": "2026-03-02T18:00:00+00:00",
            "scheduled_end_time": "2026-03-02T19:00:00+00:00",
            "privacy_level": 2,
            "entity_type": 3,
            "entity_metadata": {"location": "Room 4"},
        }

    def test_location_falls_back_to_link(self, store, group):
        event = store.create_event(make_draft(group.id))
        payload = build_payload(event, GROUP_NAME)
        assert payload["entity_metadata"] == {"location": "https://meet.example.org/standup"}
        assert "recurrence_rule" not in payload

    def test_recurring_event_carries_rule(self, store, group):
        (first, *_) = SeriesManager(store).create_series(
            make_draft(group.id), _monthly_rule(), utc(2026, 6, 30)
        )
        payload = build_payload(first, GROUP_NAME)
        assert payload["recurrence_rule"] == {
            "start": "2026-03-02T18:00:00+00:00",
            "frequency": 1,
            "interval": 1,
            "by_n_weekday": [{"n": 1, "day": 0}],
        }


class TestPushEvent:
    def test_new_event_is_created_and_linked(self, sync_config, sync_logger, store, group):
        client = FakeDiscordClient()
        event = store.create_event(make_draft(group.id))
        pushed = push_event(sync_config, sync_logger, client, store, event)

        assert len(client.creates) == 1
        assert client.patches == []
        assert pushed.remote_event_id is not None
        assert store.find_event_by_remote_id(pushed.remote_event_id).id == event.id

    def test_linked_event_is_patched(self, sync_config, sync_logger, store, group):
        client = FakeDiscordClient()
        event = store.create_event(make_draft(group.id))
        pushed = push_event(sync_config, sync_logger, client, store, event)
        push_event(sync_config, sync_logger, client, store, pushed)

        assert len(client.creates) == 1
        assert [remote_id for remote_id, _ in client.patches] == [pushed.remote_event_id]

    def test_series_is_pushed_once_from_its_anchor(self, sync_config, sync_logger, store, group):
        client = FakeDiscordClient()
        created = SeriesManager(store).create_series(
            make_draft(group.id), _monthly_rule(), utc(2026, 6, 30)
        )
        pushed = push_event(sync_config, sync_logger, client, store, created[2])
        assert pushed.id == created[0].id
        assert client.creates[0]["scheduled_start_time"] == "2026-03-02T18:00:00+00:00"

        push_event(sync_config, sync_logger, client, store, created[3])
        assert len(client.creates) == 1
        assert len(client.patches) == 1

    def test_provider_error_leaves_event_unlinked(self, sync_config, sync_logger, store, group):
        client = FakeDiscordClient()
        client.fail_with = ProviderError("Discord API error 400: Invalid Form Body", 400)
        event = store.create_event(make_draft(group.id))
        with pytest.raises(ProviderError):
            push_event(sync_config, sync_logger, client, store, event)
        assert store.find_event_by_id(event.id).remote_event_id is None

    def test_pushed_series_syncs_back_unchanged(
        self, sync_config, sync_logger, sync_stats, store, group
    ):
        client = FakeDiscordClient()
        created = SeriesManager(store).create_series(
            make_draft(group.id), _monthly_rule(), utc(2026, 6, 30)
        )
        pushed = push_event(sync_config, sync_logger, client, store, created[0])
        remote = client._events[pushed.remote_event_id]
        remote["recurrence_rule"]["end"] = "2026-06-30T00:00:00+00:00"
        remote["entity_metadata"] = {"location": "https://meet.example.org/standup"}

        run_inbound(sync_config, sync_stats, sync_logger, client, store)

        events = store.list_events()
        assert [e.start_at for e in events] == [e.start_at for e in created]
        assert events[0].remote_event_id == pushed.remote_event_id
        assert events[0].description == "Team standup"


class TestCalendarSynchronizer:
    def test_run_uses_injected_client(self, sync_config, store, group):
        client = FakeDiscordClient([make_remote_event("r-1")])
        stats = CalendarSynchronizer(sync_config, client=client).run()
        assert stats.created_or_updated == 1
        assert not client.closed
        assert store.find_event_by_remote_id("r-1") is not None

    def test_push_by_id(self, sync_config, store, group):
        event = store.create_event(make_draft(group.id))
        client = FakeDiscordClient()
        pushed = CalendarSynchronizer(sync_config, client=client).push(event.id)
        assert pushed.remote_event_id
        assert store.find_event_by_id(event.id).remote_event_id == pushed.remote_event_id

    def test_push_unknown_event(self, sync_config, store, group):
        with pytest.raises(EventNotFoundError):
            CalendarSynchronizer(sync_config, client=FakeDiscordClient()).push(404)
