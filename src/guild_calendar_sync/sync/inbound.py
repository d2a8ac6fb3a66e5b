"""
Discord → local inbound sync.
"""

from datetime import datetime
from datetime import timedelta
from itertools import islice

from guild_calendar_sync.db import EventStore
from guild_calendar_sync.discord_client import DiscordClient
from guild_calendar_sync.discord_client import RemoteScheduledEvent
from guild_calendar_sync.expander import expand
from guild_calendar_sync.models import EventDraft
from guild_calendar_sync.models import RecurrenceValidationError
from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.models import SyncStats
from guild_calendar_sync.models import UnsupportedRecurrenceError
from guild_calendar_sync.rules import parse_instant
from guild_calendar_sync.series import SeriesManager
from guild_calendar_sync.sync.utils import DEFAULT_DESCRIPTION
from guild_calendar_sync.sync.utils import build_location_details
from guild_calendar_sync.sync.utils import parse_description
from guild_calendar_sync.translator import ensure_supported
from guild_calendar_sync.translator import series_end_for
from guild_calendar_sync.translator import to_canonical

DEFAULT_DURATION = timedelta(hours=1)


def _parse_times(event: RemoteScheduledEvent, logger) -> tuple[datetime, datetime] | None:
    if not event.scheduled_start_time:
        logger.info(f"Skipping event without start time: {event.id}")
        return None
    try:
        start_at = parse_instant(event.scheduled_start_time)
    except ValueError:
        logger.info(f"Skipping event with invalid start time: {event.id}")
        return None
    try:
        end_at = parse_instant(event.scheduled_end_time) if event.scheduled_end_time else None
    except ValueError:
        end_at = None
    if end_at is None or end_at <= start_at:
        end_at = start_at + DEFAULT_DURATION
    return start_at, end_at


def _sync_series(
    event: RemoteScheduledEvent,
    draft: EventDraft,
    logger,
    store: EventStore,
    manager: SeriesManager,
) -> int:
    """Regenerate the local series for a recurring Discord event; returns rows written."""
    remote_rule = event.recurrence_rule
    rule = to_canonical(remote_rule, draft.start_at)
    base = EventDraft(
        title=draft.title,
        description=draft.description,
        working_group_id=draft.working_group_id,
        start_at=rule.start,
        end_at=rule.start + draft.duration,
        location=draft.location,
        location_display_name=draft.location_display_name,
    )
    series_end = series_end_for(remote_rule, rule.start)
    if remote_rule.count:
        occurrences = list(
            islice(expand(base.start_at, base.end_at, rule, series_end), remote_rule.count)
        )
        series_end = min(series_end, occurrences[-1].start)

    existing = store.find_event_by_remote_id(event.id)
    created = manager.regenerate_series(existing, base, rule, series_end, remote_event_id=event.id)
    logger.debug(f"Regenerated series for {event.id}: {len(created)} occurrence(s)")
    return len(created)


def run_inbound(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    client: DiscordClient,
    store: EventStore,
):
    """
    Pull every Discord scheduled event of the guild into the local store.

    Items that cannot be represented (no usable start time, unsupported
    recurrence, unknown working group) are skipped and counted; a failure to
    fetch the list aborts the pass.
    """
    manager = SeriesManager(store, logger)

    logger.info(f"Fetching scheduled events for guild {config.guild_id}...")
    events = client.list_scheduled_events()
    logger.info(f"Processing {len(events)} scheduled events...")

    for event in events:
        logger.debug(
            f"Processing event {event.id} ({event.name!r}): start={event.scheduled_start_time} "
            f"end={event.scheduled_end_time} entity_type={event.entity_type} "
            f"location={event.location!r} channel={event.channel_id}"
        )

        times = _parse_times(event, logger)
        if times is None:
            stats.skipped += 1
            continue
        start_at, end_at = times

        if event.recurrence_rule is not None:
            try:
                ensure_supported(event.id, event.name, event.recurrence_rule)
            except UnsupportedRecurrenceError as e:
                logger.info(f"Skipping event: {e}")
                stats.skipped += 1
                continue

        parsed = parse_description(event.description)
        group = (
            store.find_working_group_by_name(parsed.working_group_name)
            if parsed.working_group_name
            else None
        )
        if group is None:
            logger.info(
                f"Skipping event without matching working group: {event.id} "
                f"({parsed.working_group_name or 'no tag'})"
            )
            stats.skipped += 1
            continue

        location = build_location_details(event, config.guild_id)
        draft = EventDraft(
            title=event.name,
            description=parsed.cleaned or DEFAULT_DESCRIPTION,
            working_group_id=group.id,
            start_at=start_at,
            end_at=end_at,
            location=location.link,
            location_display_name=location.display_name,
        )

        if event.recurrence_rule is None:
            existing = store.find_event_by_remote_id(event.id)
            if existing is not None and existing.series_id:
                # The remote event stopped recurring; collapse the local series onto its row.
                manager.update_event(existing.id, draft)
            else:
                store.upsert_remote_event(event.id, draft)
            stats.created_or_updated += 1
            logger.debug(f"Upserted single event {event.id}")
            continue

        try:
            stats.created_or_updated += _sync_series(event, draft, logger, store, manager)
        except RecurrenceValidationError as e:
            logger.info(f"Skipping event with malformed recurrence {event.id}: {e}")
            stats.skipped += 1

    logger.info(
        f"Sync complete: {stats.created_or_updated} created/updated, {stats.skipped} skipped"
    )
