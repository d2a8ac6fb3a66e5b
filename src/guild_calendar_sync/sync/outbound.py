"""
Local → Discord outbound push.
"""

from typing import Any

from guild_calendar_sync.db import EventStore
from guild_calendar_sync.discord_client import GUILD_ONLY
from guild_calendar_sync.discord_client import DiscordClient
from guild_calendar_sync.discord_client import EntityType
from guild_calendar_sync.models import Event
from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.rules import format_instant
from guild_calendar_sync.sync.utils import append_working_group_tag
from guild_calendar_sync.translator import to_remote

DEFAULT_LOCATION = "TBD"


def build_payload(event: Event, group_name: str | None) -> dict[str, Any]:
    """Discord scheduled-event body for ``event``."""
    payload: dict[str, Any] = {
        "name": event.title,
        "description": append_working_group_tag(event.description, group_name),
        "scheduled_start_time": format_instant(event.start_at),
        "scheduled_end_time": format_instant(event.end_at),
        "privacy_level": GUILD_ONLY,
        "entity_type": int(EntityType.EXTERNAL),
        "entity_metadata": {
            "location": event.location_display_name or event.location or DEFAULT_LOCATION
        },
    }
    remote_rule = to_remote(event.rule)
    if remote_rule is not None:
        payload["recurrence_rule"] = remote_rule.to_api()
    return payload


def _series_anchor(store: EventStore, event: Event) -> Event:
    """The occurrence that represents a series on Discord: the linked row, else the first."""
    if not event.series_id or event.remote_event_id:
        return event
    members = store.list_events_by_series(event.series_id)
    for member in members:
        if member.remote_event_id:
            return member
    return members[0] if members else event


def push_event(
    config: SyncConfig,
    logger,
    client: DiscordClient,
    store: EventStore,
    event: Event,
) -> Event:
    """
    Create or update the Discord counterpart of a local event.

    A series is pushed once, from its anchor occurrence, with the recurrence
    block attached.  Returns the row that carries the remote link.
    """
    target = _series_anchor(store, event)
    group = store.find_working_group_by_id(target.working_group_id)
    payload = build_payload(target, group.name if group else None)

    if target.remote_event_id:
        logger.info(f"Updating Discord event {target.remote_event_id} from event {target.id}")
        client.patch_scheduled_event(target.remote_event_id, payload)
        return target

    logger.info(f"Creating Discord event for event {target.id} ({target.title!r})")
    remote_id = client.create_scheduled_event(payload)
    store.set_remote_event_id(target.id, remote_id)
    logger.debug(f"Event {target.id} linked to Discord event {remote_id}")
    return store.find_event_by_id(target.id)
