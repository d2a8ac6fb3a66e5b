"""
Occurrence expansion: turns a canonical rule into concrete (start, end) pairs.

Candidates come from ``dateutil.rrule`` walked in UTC; nothing here consults
a timezone database.
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from datetime import timezone
from typing import NamedTuple

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY
from dateutil.rrule import MO
from dateutil.rrule import MONTHLY
from dateutil.rrule import WEEKLY
from dateutil.rrule import rrule
from dateutil.rrule import weekday as rrule_weekday

from guild_calendar_sync.rules import CanonicalRule
from guild_calendar_sync.rules import Frequency
from guild_calendar_sync.rules import to_utc

logger = logging.getLogger(__name__)

RRULE_FREQUENCIES = {
    Frequency.DAILY: DAILY,
    Frequency.WEEKLY: WEEKLY,
    Frequency.MONTHLY: MONTHLY,
}


class Occurrence(NamedTuple):
    start: datetime
    end: datetime


def ordinal_of_weekday(value: datetime) -> int:
    """Return which occurrence of its weekday ``value`` is within its month (1-5)."""
    return (value.day - 1) // 7 + 1


def nth_weekday_of_month(
    year: int, month: int, n: int, weekday: int, time_of: datetime
) -> datetime | None:
    """
    Date of the n-th ``weekday`` (Monday=0) in the given month, at the
    time-of-day of ``time_of``.

    Returns None when the month has no such day (a 5th Friday in most months,
    anything past the 5th in every month).
    """
    if not 1 <= n <= 5:
        return None
    first = datetime(
        year,
        month,
        1,
        time_of.hour,
        time_of.minute,
        time_of.second,
        time_of.microsecond,
        tzinfo=timezone.utc,
    )
    candidate = first + relativedelta(weekday=rrule_weekday(weekday, n))
    if candidate.month != month:
        return None
    return candidate


def _build_rrule(rule: CanonicalRule, anchor: datetime, bound: datetime) -> rrule | None:
    """The rrule for ``rule``, or None when its qualifier can never match."""
    kwargs = {}
    if rule.frequency is Frequency.DAILY:
        if rule.by_weekday:
            kwargs["byweekday"] = rule.by_weekday
    elif rule.frequency is Frequency.WEEKLY:
        kwargs["byweekday"] = rule.by_weekday[0] if rule.by_weekday else anchor.weekday()
    elif rule.by_n_weekday is not None:
        if not 1 <= rule.by_n_weekday.n <= 5:
            return None
        kwargs["byweekday"] = rrule_weekday(rule.by_n_weekday.day, rule.by_n_weekday.n)
    else:
        day = rule.by_month_day if rule.by_month_day is not None else anchor.day
        if not 1 <= day <= 31:
            return None
        kwargs["bymonthday"] = day

    return rrule(
        RRULE_FREQUENCIES[rule.frequency],
        dtstart=anchor,
        interval=rule.interval,
        until=bound,
        wkst=MO,
        **kwargs,
    )


def _candidate_starts(
    rule: CanonicalRule, anchor: datetime, bound: datetime
) -> Iterator[datetime]:
    recurrence = _build_rrule(rule, anchor, bound)
    if recurrence is None:
        return
    anchor_month = (anchor.year, anchor.month)
    for candidate in recurrence:
        # rrule truncates dtstart to whole seconds
        candidate = candidate.replace(microsecond=anchor.microsecond)
        if candidate <= anchor:
            continue
        # Monthly rules step whole months from the anchor's month, which only
        # ever holds the base occurrence.
        in_anchor_month = (candidate.year, candidate.month) == anchor_month
        if rule.frequency is Frequency.MONTHLY and in_anchor_month:
            continue
        if candidate > bound:
            return
        yield candidate


def expand(
    base_start: datetime,
    base_end: datetime,
    rule: CanonicalRule | None,
    series_end: datetime | None,
) -> Iterator[Occurrence]:
    """
    Yield the occurrences of a series in chronological order.

    The base occurrence is always yielded first, even without a rule.  Later
    candidates are generated from the base start and the rule; generation
    stops at the first candidate that starts strictly after ``series_end``
    (a candidate exactly on the bound is kept).  Every occurrence has the
    base duration.
    """
    start = to_utc(base_start)
    duration = to_utc(base_end) - start
    yield Occurrence(start, start + duration)

    if rule is None or series_end is None:
        return

    bound = to_utc(series_end)
    count = 1
    for candidate in _candidate_starts(rule, start, bound):
        count += 1
        logger.debug("Occurrence %d at %s", count, candidate.isoformat())
        yield Occurrence(candidate, candidate + duration)
    logger.debug("Expanded %s through %s into %d occurrence(s)", rule.describe(), bound, count)
