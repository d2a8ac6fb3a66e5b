"""
Translation between canonical rules and Discord recurrence rules.

Discord's rule format can express more than the expander reproduces.  Shapes
outside the supported subset are rejected rather than approximated.
"""

from datetime import datetime
from datetime import timedelta

from guild_calendar_sync.models import UnsupportedRecurrenceError
from guild_calendar_sync.rules import DISCORD_FREQUENCY_CODES
from guild_calendar_sync.rules import FREQUENCY_BY_CODE
from guild_calendar_sync.rules import CanonicalRule
from guild_calendar_sync.rules import Frequency
from guild_calendar_sync.rules import NthWeekday
from guild_calendar_sync.rules import RemoteRecurrenceRule
from guild_calendar_sync.rules import _int_list
from guild_calendar_sync.rules import format_instant
from guild_calendar_sync.rules import parse_instant
from guild_calendar_sync.rules import to_utc

# Series without an end date are expanded this far ahead of their anchor.
DEFAULT_HORIZON = timedelta(days=365)


def unsupported_reason(rule: RemoteRecurrenceRule) -> str | None:
    """Return why ``rule`` cannot be expanded faithfully, or None if it can."""
    frequency = None
    if isinstance(rule.frequency, int) and not isinstance(rule.frequency, bool):
        frequency = FREQUENCY_BY_CODE.get(rule.frequency)
    if frequency is None:
        return f"frequency {rule.frequency!r} is not daily, weekly or monthly"

    if rule.interval is not None and (isinstance(rule.interval, bool) or rule.interval != 1):
        return f"interval {rule.interval} is not 1"

    if frequency in (Frequency.DAILY, Frequency.WEEKLY):
        if rule.by_month or rule.by_month_day or rule.by_n_weekday:
            return f"{frequency.value} rule has month or month-day qualifiers"
        if frequency is Frequency.WEEKLY and rule.by_weekday and len(rule.by_weekday) > 1:
            return "weekly rule lists more than one weekday"
        return None

    if rule.by_month:
        return "monthly rule filters by month of year"
    if rule.by_weekday:
        return "monthly rule filters by weekday"
    if bool(rule.by_n_weekday) == bool(rule.by_month_day):
        return "monthly rule needs exactly one of by_n_weekday or by_month_day"
    qualifier = rule.by_n_weekday or rule.by_month_day
    if len(qualifier) != 1:
        return "monthly rule lists more than one day"
    return None


def is_supported(rule: RemoteRecurrenceRule | None) -> bool:
    return rule is not None and unsupported_reason(rule) is None


def ensure_supported(remote_id: str, name: str, rule: RemoteRecurrenceRule):
    """Raise UnsupportedRecurrenceError naming the remote item if rule is unsupported."""
    reason = unsupported_reason(rule)
    if reason is not None:
        raise UnsupportedRecurrenceError(remote_id, name, reason)


def to_canonical(rule: RemoteRecurrenceRule, fallback_start: datetime) -> CanonicalRule:
    """
    Map a supported Discord rule onto a canonical rule.

    The rule's own start is the anchor; ``fallback_start`` (the scheduled start
    of the event) is used when the rule carries none or an unparsable one.
    Raises RecurrenceValidationError when a qualifier is not a list of integers.
    """
    try:
        start = parse_instant(rule.start) if rule.start else to_utc(fallback_start)
    except ValueError:
        start = to_utc(fallback_start)

    frequency = FREQUENCY_BY_CODE[rule.frequency]
    interval = rule.interval or 1
    weekdays = _int_list(rule.by_weekday, "by_weekday")
    month_days = _int_list(rule.by_month_day, "by_month_day")

    if frequency is Frequency.DAILY:
        return CanonicalRule(frequency, start, interval, by_weekday=weekdays or None)

    if frequency is Frequency.WEEKLY:
        weekday = weekdays[0] if weekdays else start.weekday()
        return CanonicalRule(frequency, start, interval, by_weekday=(weekday,))

    if rule.by_n_weekday:
        nth = NthWeekday.from_dict(rule.by_n_weekday[0])
        return CanonicalRule(frequency, start, interval, by_n_weekday=nth)
    return CanonicalRule(frequency, start, interval, by_month_day=month_days[0])


def to_remote(rule: CanonicalRule | None) -> RemoteRecurrenceRule | None:
    """Build the Discord recurrence block for a canonical rule; None stays None."""
    if rule is None:
        return None
    remote = RemoteRecurrenceRule(
        frequency=DISCORD_FREQUENCY_CODES[rule.frequency],
        start=format_instant(rule.start),
        interval=rule.interval,
    )
    if rule.by_weekday:
        remote.by_weekday = list(rule.by_weekday)
    if rule.by_n_weekday is not None:
        remote.by_n_weekday = [rule.by_n_weekday.to_dict()]
    if rule.by_month_day is not None:
        remote.by_month_day = [rule.by_month_day]
    return remote


def series_end_for(rule: RemoteRecurrenceRule, anchor: datetime) -> datetime:
    """The rule's end instant, or the default horizon after ``anchor``."""
    if rule.end:
        try:
            return parse_instant(rule.end)
        except ValueError:
            pass
    return to_utc(anchor) + DEFAULT_HORIZON
