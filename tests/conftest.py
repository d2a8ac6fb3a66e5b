"""
Shared pytest fixtures and Discord payload helpers.
"""

import logging
from datetime import datetime
from datetime import timezone

import pytest

from guild_calendar_sync.db import EventStore
from guild_calendar_sync.models import EventDraft
from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.models import SyncStats

GUILD_ID = "123456789012345678"
GROUP_NAME = "Outreach"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_remote_event(
    event_id: str,
    name: str = "Test Event",
    group: str | None = GROUP_NAME,
    description: str = "Weekly sync",
    start: str | None = "2026-03-02T18:00:00+00:00",
    end: str | None = "2026-03-02T19:00:00+00:00",
    entity_type: int = 3,
    location: str | None = "Community Hall",
    channel_id: str | None = None,
    recurrence_rule: dict | None = None,
) -> dict:
    """Return a Discord scheduled-event object as the API would send it."""
    text = description
    if group is not None:
        text = f"{description}\n\n```working-group-id={group}```"
    data = {
        "id": event_id,
        "guild_id": GUILD_ID,
        "name": name,
        "description": text,
        "scheduled_start_time": start,
        "scheduled_end_time": end,
        "privacy_level": 2,
        "status": 1,
        "entity_type": entity_type,
        "channel_id": channel_id,
        "entity_metadata": {"location": location} if location is not None else None,
        "recurrence_rule": recurrence_rule,
    }
    return data


def make_draft(group_id: int, title: str = "Standup", **overrides) -> EventDraft:
    values = {
        "title": title,
        "description": "Team standup",
        "working_group_id": group_id,
        "start_at": utc(2026, 3, 2, 18, 0),
        "end_at": utc(2026, 3, 2, 19, 0),
        "location": "https://meet.example.org/standup",
        "location_display_name": None,
    }
    values.update(overrides)
    return EventDraft(**values)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_events.db"


@pytest.fixture
def store(db_path):
    with EventStore(db_path) as s:
        yield s


@pytest.fixture
def group(store):
    return store.create_working_group(GROUP_NAME, "Community outreach")


@pytest.fixture
def sync_config(db_path):
    return SyncConfig(
        db_path=db_path,
        bot_token="test-token",
        guild_id=GUILD_ID,
        verbose=False,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
