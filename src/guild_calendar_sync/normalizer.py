"""
Recurrence normalization and event payload validation.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from guild_calendar_sync.models import EventDraft
from guild_calendar_sync.models import EventValidationError
from guild_calendar_sync.models import RecurrenceValidationError
from guild_calendar_sync.rules import FREQUENCY_BY_CODE
from guild_calendar_sync.rules import CanonicalRule
from guild_calendar_sync.rules import Frequency
from guild_calendar_sync.rules import RecurrenceRequest
from guild_calendar_sync.rules import parse_instant
from guild_calendar_sync.rules import to_utc

logger = logging.getLogger(__name__)


def _resolve_frequency(value: str | int | None) -> Frequency:
    if isinstance(value, str):
        try:
            return Frequency(value.strip().lower())
        except ValueError:
            pass
    elif isinstance(value, int) and value in FREQUENCY_BY_CODE:
        return FREQUENCY_BY_CODE[value]
    raise RecurrenceValidationError(
        f"frequency must be daily (3), weekly (2) or monthly (1), got {value!r}"
    )


def normalize(request: RecurrenceRequest | None, anchor_start: datetime) -> CanonicalRule | None:
    """Validate a caller's recurrence request and return the canonical rule.

    ``None`` means "does not recur" and is passed through.  The anchor start
    is embedded in the result so expansion needs nothing else.

    Monthly requests without any qualifier silently default to the anchor's
    day of month rather than being rejected.
    """
    if request is None:
        return None

    frequency = _resolve_frequency(request.frequency)
    interval = 1 if request.interval is None else request.interval
    if interval < 1:
        raise RecurrenceValidationError("interval must be a positive integer")

    start = to_utc(anchor_start)

    if frequency is Frequency.DAILY:
        weekdays = tuple(request.by_weekday) if request.by_weekday else None
        return CanonicalRule(frequency, start, interval, by_weekday=weekdays)

    if frequency is Frequency.WEEKLY:
        weekday = request.by_weekday[0] if request.by_weekday else start.weekday()
        return CanonicalRule(frequency, start, interval, by_weekday=(weekday,))

    if request.by_n_weekday:
        return CanonicalRule(frequency, start, interval, by_n_weekday=request.by_n_weekday[0])
    month_day = request.by_month_day[0] if request.by_month_day else start.day
    return CanonicalRule(frequency, start, interval, by_month_day=month_day)


def normalize_dict(data: Mapping[str, Any] | None, anchor_start: datetime) -> CanonicalRule | None:
    """normalize() for raw mappings (JSON bodies, stored snapshots)."""
    if data is None:
        return None
    return normalize(RecurrenceRequest.from_dict(data), anchor_start)


def normalize_display_name(value: Any) -> str | None:
    """Return a trimmed display name, or None if blank or not a string."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _required_text(body: Mapping[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        raise EventValidationError(f"{key} is required")
    return value.strip()


def _required_instant(body: Mapping[str, Any], key: str) -> datetime:
    try:
        return parse_instant(body.get(key))
    except (TypeError, ValueError):
        raise EventValidationError(f"{key} must be a valid ISO date") from None


def validate_event_payload(
    body: Any,
) -> tuple[EventDraft, CanonicalRule | None, datetime | None]:
    """
    Validate an event body and normalize its recurrence.

    Expected keys: title, description, working_group_id, start_at, end_at,
    location, and optionally location_display_name, recurrence_rule and
    series_end_at.

    Returns (draft, rule, series_end_at).  Raises EventValidationError (or its
    RecurrenceValidationError subclass) on the first problem found.
    """
    if not isinstance(body, Mapping):
        raise EventValidationError("event payload must be an object")

    title = _required_text(body, "title")
    description = _required_text(body, "description")

    group_id = body.get("working_group_id")
    try:
        group_id = int(group_id)
    except (TypeError, ValueError):
        group_id = 0
    if group_id <= 0:
        raise EventValidationError("working_group_id must be a positive number")

    start_at = _required_instant(body, "start_at")
    end_at = _required_instant(body, "end_at")
    if end_at <= start_at:
        raise EventValidationError("end_at must be after start_at")

    location = _required_text(body, "location")

    display_name = body.get("location_display_name")
    if display_name is not None and not isinstance(display_name, str):
        raise EventValidationError("location_display_name must be a string")

    rule = normalize_dict(body.get("recurrence_rule"), start_at)

    series_end_at = None
    if body.get("series_end_at") is not None:
        series_end_at = _required_instant(body, "series_end_at")
    if rule is not None and series_end_at is None:
        raise EventValidationError("series_end_at is required for recurring events")
    if rule is None:
        series_end_at = None

    draft = EventDraft(
        title=title,
        description=description,
        working_group_id=group_id,
        start_at=start_at,
        end_at=end_at,
        location=location,
        location_display_name=normalize_display_name(display_name),
    )
    logger.debug("Validated event payload %r (rule=%s)", title, rule.describe() if rule else None)
    return draft, rule, series_end_at
