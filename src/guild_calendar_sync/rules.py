"""
Recurrence rule types.

Three shapes travel through the engine and are never mixed:

``RecurrenceRequest``
    What a caller sends (CLI, payload).  Loosely typed, not yet validated.
``CanonicalRule``
    The validated rule every other component works with.  Serialized onto
    each event row of a series.
``RemoteRecurrenceRule``
    Discord's ``recurrence_rule`` object, as fetched or as pushed.

Conversions live in ``normalizer`` (request -> canonical) and
``translator`` (canonical <-> remote).
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any

from guild_calendar_sync.models import RecurrenceValidationError


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Discord's numeric frequency codes (YEARLY=0 is never accepted).
DISCORD_FREQUENCY_CODES = {
    Frequency.MONTHLY: 1,
    Frequency.WEEKLY: 2,
    Frequency.DAILY: 3,
}
FREQUENCY_BY_CODE = {code: freq for freq, code in DISCORD_FREQUENCY_CODES.items()}

# Monday=0 .. Sunday=6, shared by Discord and datetime.weekday()
WEEKDAY_NAMES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


# ---------------------------------------------------------------------------
# UTC instant helpers
# ---------------------------------------------------------------------------


def to_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises ValueError for anything that is not a parsable timestamp.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a timestamp: {value!r}")
    return to_utc(datetime.fromisoformat(value.strip()))


def format_instant(value: datetime) -> str:
    return to_utc(value).isoformat()


def _int_value(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecurrenceValidationError(f"{label} must be an integer")
    return value


def _int_list(value: Any, label: str) -> tuple[int, ...] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise RecurrenceValidationError(f"{label} must be a list of integers")
    return tuple(_int_value(v, label) for v in value)


@dataclass(frozen=True)
class NthWeekday:
    """The n-th occurrence of ``day`` within a month (n counted from 1)."""

    n: int
    day: int

    @classmethod
    def from_dict(cls, data: Any) -> "NthWeekday":
        if not isinstance(data, Mapping):
            raise RecurrenceValidationError("by_n_weekday entries must be objects")
        return cls(
            n=_int_value(data.get("n"), "by_n_weekday.n"),
            day=_int_value(data.get("day"), "by_n_weekday.day"),
        )

    def to_dict(self) -> dict[str, int]:
        return {"n": self.n, "day": self.day}


# ---------------------------------------------------------------------------
# Caller request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecurrenceRequest:
    """A recurrence as supplied by a caller, before normalization."""

    frequency: str | int | None
    interval: int | None = None
    by_weekday: tuple[int, ...] | None = None
    by_n_weekday: tuple[NthWeekday, ...] | None = None
    by_month_day: tuple[int, ...] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "RecurrenceRequest":
        """Check the shape of a loosely-typed mapping; semantics are left to normalize()."""
        if not isinstance(data, Mapping):
            raise RecurrenceValidationError("recurrence rule must be an object")

        frequency = data.get("frequency")
        if frequency is not None and (
            isinstance(frequency, bool) or not isinstance(frequency, (str, int))
        ):
            raise RecurrenceValidationError("frequency must be a name or a number")

        interval = data.get("interval")
        if interval is not None:
            interval = _int_value(interval, "interval")

        n_weekday = data.get("by_n_weekday")
        if n_weekday is not None:
            if not isinstance(n_weekday, (list, tuple)):
                raise RecurrenceValidationError("by_n_weekday must be a list")
            n_weekday = tuple(NthWeekday.from_dict(entry) for entry in n_weekday)

        return cls(
            frequency=frequency,
            interval=interval,
            by_weekday=_int_list(data.get("by_weekday"), "by_weekday"),
            by_n_weekday=n_weekday,
            by_month_day=_int_list(data.get("by_month_day"), "by_month_day"),
        )


# ---------------------------------------------------------------------------
# Canonical rule
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalRule:
    """Validated recurrence: frequency, interval, anchor and one qualifier."""

    frequency: Frequency
    start: datetime
    interval: int = 1
    by_weekday: tuple[int, ...] | None = None
    by_n_weekday: NthWeekday | None = None
    by_month_day: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the same keys RecurrenceRequest.from_dict reads."""
        data: dict[str, Any] = {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "start": format_instant(self.start),
        }
        if self.by_weekday is not None:
            data["by_weekday"] = list(self.by_weekday)
        if self.by_n_weekday is not None:
            data["by_n_weekday"] = [self.by_n_weekday.to_dict()]
        if self.by_month_day is not None:
            data["by_month_day"] = [self.by_month_day]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanonicalRule":
        try:
            frequency = Frequency(data["frequency"])
            start = parse_instant(data["start"])
        except (KeyError, ValueError) as e:
            raise RecurrenceValidationError(f"invalid stored rule: {e}") from e

        weekdays = _int_list(data.get("by_weekday"), "by_weekday")
        n_weekdays = data.get("by_n_weekday") or []
        month_days = _int_list(data.get("by_month_day"), "by_month_day") or ()
        return cls(
            frequency=frequency,
            start=start,
            interval=_int_value(data.get("interval", 1), "interval"),
            by_weekday=weekdays,
            by_n_weekday=NthWeekday.from_dict(n_weekdays[0]) if n_weekdays else None,
            by_month_day=month_days[0] if month_days else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "CanonicalRule":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RecurrenceValidationError(f"invalid stored rule: {e}") from e
        return cls.from_dict(data)

    def describe(self) -> str:
        """Short human-readable summary, e.g. 'every 2 weeks on WE'."""
        unit = {Frequency.DAILY: "day", Frequency.WEEKLY: "week", Frequency.MONTHLY: "month"}[
            self.frequency
        ]
        text = f"every {unit}" if self.interval == 1 else f"every {self.interval} {unit}s"
        if self.by_weekday:
            text += " on " + ",".join(WEEKDAY_NAMES[d % 7] for d in self.by_weekday)
        if self.by_n_weekday is not None:
            text += f" on {WEEKDAY_NAMES[self.by_n_weekday.day % 7]} #{self.by_n_weekday.n}"
        if self.by_month_day is not None:
            text += f" on day {self.by_month_day}"
        return text


# ---------------------------------------------------------------------------
# Discord rule
# ---------------------------------------------------------------------------


@dataclass
class RemoteRecurrenceRule:
    """Discord's recurrence_rule object (only the fields the engine reads)."""

    frequency: int | None
    start: str | None = None
    end: str | None = None
    interval: int | None = None
    by_weekday: list[int] | None = None
    by_n_weekday: list[dict[str, int]] | None = None
    by_month: list[int] | None = None
    by_month_day: list[int] | None = None
    count: int | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "RemoteRecurrenceRule":
        return cls(
            frequency=data.get("frequency"),
            start=data.get("start"),
            end=data.get("end"),
            interval=data.get("interval"),
            by_weekday=data.get("by_weekday"),
            by_n_weekday=data.get("by_n_weekday"),
            by_month=data.get("by_month"),
            by_month_day=data.get("by_month_day"),
            count=data.get("count"),
        )

    def to_api(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "start": self.start,
            "frequency": self.frequency,
            "interval": self.interval if self.interval is not None else 1,
        }
        for key in ("end", "by_weekday", "by_n_weekday", "by_month", "by_month_day", "count"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data
