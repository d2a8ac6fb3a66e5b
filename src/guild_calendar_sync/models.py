"""
Pure data models, no sqlite or HTTP imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from guild_calendar_sync.rules import CanonicalRule

DEFAULT_DB = Path.home() / ".local/share/guild-calendar-sync.db"
DEFAULT_CONFIG = Path.home() / ".config/guild-calendar-sync.conf"
DEFAULT_API_BASE = "https://discord.com/api/v10"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class ConfigurationError(CalendarSyncError):
    """Provider credentials or guild scope are missing."""

    pass


class ProviderError(CalendarSyncError):
    """The provider answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class EventValidationError(CalendarSyncError):
    """An event payload is malformed."""

    pass


class RecurrenceValidationError(EventValidationError):
    """A recurrence request cannot be normalized."""

    pass


class UnsupportedRecurrenceError(CalendarSyncError):
    """A provider recurrence rule the engine cannot expand faithfully."""

    def __init__(self, remote_id: str, name: str, reason: str):
        super().__init__(f"Unsupported recurrence on {remote_id} ({name!r}): {reason}")
        self.remote_id = remote_id
        self.name = name
        self.reason = reason


class EventNotFoundError(CalendarSyncError):
    """No event row with the requested id."""

    pass


@dataclass
class SyncConfig:
    """Configuration for a sync run."""

    db_path: Path
    bot_token: str | None = None
    guild_id: str | None = None
    api_base: str = DEFAULT_API_BASE
    request_timeout: float = 30.0
    sync_interval_minutes: int = 15
    verbose: bool = False


@dataclass
class SyncStats:
    """Statistics for an inbound sync pass."""

    created_or_updated: int = 0
    skipped: int = 0


@dataclass
class WorkingGroup:
    id: int
    name: str
    description: str = ""
    created_at: str | None = None


@dataclass
class EventDraft:
    """Mutable event fields before they are persisted."""

    title: str
    description: str
    working_group_id: int
    start_at: datetime
    end_at: datetime
    location: str
    location_display_name: str | None = None

    @property
    def duration(self):
        return self.end_at - self.start_at


@dataclass
class Event:
    """One persisted calendar occurrence."""

    id: int
    title: str
    description: str
    working_group_id: int
    start_at: datetime
    end_at: datetime
    location: str
    location_display_name: str | None = None
    remote_event_id: str | None = None
    series_id: str | None = None
    rule: "CanonicalRule | None" = None
    series_end_at: datetime | None = None
    created_at: str | None = None
    working_group_name: str | None = field(default=None, compare=False)

    @property
    def is_recurring(self) -> bool:
        return self.series_id is not None

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title,
            description=self.description,
            working_group_id=self.working_group_id,
            start_at=self.start_at,
            end_at=self.end_at,
            location=self.location,
            location_display_name=self.location_display_name,
        )
