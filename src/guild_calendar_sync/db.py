"""
SQLite persistence for events and working groups.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from guild_calendar_sync.models import EventDraft
from guild_calendar_sync.models import Event
from guild_calendar_sync.models import EventValidationError
from guild_calendar_sync.models import WorkingGroup
from guild_calendar_sync.rules import CanonicalRule
from guild_calendar_sync.rules import format_instant
from guild_calendar_sync.rules import parse_instant

logger = logging.getLogger(__name__)

_EVENT_SELECT = (
    "SELECT e.*, wg.name AS working_group_name FROM events e "
    "LEFT JOIN working_groups wg ON wg.id = e.working_group_id"
)


def _row_to_event(row: sqlite3.Row) -> Event:
    return Event(
        id=row["id"],
        title=row["name"],
        description=row["description"],
        working_group_id=row["working_group_id"],
        start_at=parse_instant(row["start_at"]),
        end_at=parse_instant(row["end_at"]),
        location=row["location"],
        location_display_name=row["location_display_name"],
        remote_event_id=row["discord_event_id"],
        series_id=row["series_uuid"],
        rule=CanonicalRule.from_json(row["recurrence"]) if row["recurrence"] else None,
        series_end_at=parse_instant(row["series_end_at"]) if row["series_end_at"] else None,
        created_at=row["created_at"],
        working_group_name=row["working_group_name"],
    )


def _check_series_tags(
    series_id: str | None, rule: CanonicalRule | None, series_end_at: datetime | None
):
    present = [value is not None for value in (series_id, rule, series_end_at)]
    if any(present) and not all(present):
        raise EventValidationError(
            "series_id, rule and series_end_at must be set together or not at all"
        )


class EventStore:
    """Manages the SQLite database holding events and working groups."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self._depth = 0

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Open the database and create the schema if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS working_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT NOT NULL,
                working_group_id INTEGER NOT NULL,
                start_at TEXT NOT NULL,
                end_at TEXT NOT NULL,
                location TEXT NOT NULL,
                location_display_name TEXT,
                discord_event_id TEXT,
                series_uuid TEXT,
                recurrence TEXT,
                series_end_at TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (working_group_id) REFERENCES working_groups(id) ON DELETE CASCADE
            );
            CREATE UNIQUE INDEX IF NOT EXISTS events_discord_event_id_idx
                ON events(discord_event_id);
            CREATE INDEX IF NOT EXISTS events_series_uuid_idx ON events(series_uuid);
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Transactions                                                          #
    # ------------------------------------------------------------------ #

    @contextmanager
    def transaction(self) -> Iterator["EventStore"]:
        """Group several writes into one atomic unit (nesting joins the outer one)."""
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.conn.commit()

    def _autocommit(self):
        if self._depth == 0:
            self.conn.commit()

    # ------------------------------------------------------------------ #
    # Working groups                                                        #
    # ------------------------------------------------------------------ #

    def create_working_group(self, name: str, description: str = "") -> WorkingGroup:
        cursor = self.conn.execute(
            "INSERT INTO working_groups (name, description) VALUES (?, ?)",
            (name, description),
        )
        self._autocommit()
        return self.find_working_group_by_id(cursor.lastrowid)

    def find_working_group_by_id(self, group_id: int) -> WorkingGroup | None:
        row = self.conn.execute(
            "SELECT * FROM working_groups WHERE id = ?", (group_id,)
        ).fetchone()
        return WorkingGroup(**dict(row)) if row else None

    def find_working_group_by_name(self, name: str) -> WorkingGroup | None:
        """Exact (case-sensitive) name match."""
        row = self.conn.execute(
            "SELECT * FROM working_groups WHERE name = ? ORDER BY id LIMIT 1", (name,)
        ).fetchone()
        return WorkingGroup(**dict(row)) if row else None

    def list_working_groups(self) -> list[WorkingGroup]:
        rows = self.conn.execute("SELECT * FROM working_groups ORDER BY name").fetchall()
        return [WorkingGroup(**dict(row)) for row in rows]

    # ------------------------------------------------------------------ #
    # Events                                                                #
    # ------------------------------------------------------------------ #

    def create_event(
        self,
        draft: EventDraft,
        series_id: str | None = None,
        rule: CanonicalRule | None = None,
        series_end_at: datetime | None = None,
        remote_event_id: str | None = None,
    ) -> Event:
        """Insert one event row and return it with all columns."""
        _check_series_tags(series_id, rule, series_end_at)
        cursor = self.conn.execute(
            "INSERT INTO events "
            "(name, description, working_group_id, start_at, end_at, location, "
            " location_display_name, discord_event_id, series_uuid, recurrence, series_end_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                draft.title,
                draft.description,
                draft.working_group_id,
                format_instant(draft.start_at),
                format_instant(draft.end_at),
                draft.location,
                draft.location_display_name,
                remote_event_id,
                series_id,
                rule.to_json() if rule else None,
                format_instant(series_end_at) if series_end_at else None,
            ),
        )
        self._autocommit()
        return self.find_event_by_id(cursor.lastrowid)

    def update_event(self, event_id: int, draft: EventDraft) -> Event | None:
        """Overwrite the mutable fields of one row and drop any series tags."""
        self.conn.execute(
            "UPDATE events SET name = ?, description = ?, working_group_id = ?, "
            "start_at = ?, end_at = ?, location = ?, location_display_name = ?, "
            "series_uuid = NULL, recurrence = NULL, series_end_at = NULL "
            "WHERE id = ?",
            (
                draft.title,
                draft.description,
                draft.working_group_id,
                format_instant(draft.start_at),
                format_instant(draft.end_at),
                draft.location,
                draft.location_display_name,
                event_id,
            ),
        )
        self._autocommit()
        return self.find_event_by_id(event_id)

    def upsert_remote_event(self, remote_event_id: str, draft: EventDraft) -> Event:
        """Insert a standalone row linked to remote_event_id, or update it in place."""
        existing = self.find_event_by_remote_id(remote_event_id)
        if existing is None:
            return self.create_event(draft, remote_event_id=remote_event_id)
        return self.update_event(existing.id, draft)

    def set_remote_event_id(self, event_id: int, remote_event_id: str | None):
        self.conn.execute(
            "UPDATE events SET discord_event_id = ? WHERE id = ?", (remote_event_id, event_id)
        )
        self._autocommit()

    def delete_event_by_id(self, event_id: int):
        self.conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
        self._autocommit()

    def delete_events_by_series(self, series_id: str) -> int:
        cursor = self.conn.execute("DELETE FROM events WHERE series_uuid = ?", (series_id,))
        self._autocommit()
        return cursor.rowcount

    def find_event_by_id(self, event_id: int) -> Event | None:
        row = self.conn.execute(f"{_EVENT_SELECT} WHERE e.id = ?", (event_id,)).fetchone()
        return _row_to_event(row) if row else None

    def find_event_by_remote_id(self, remote_event_id: str) -> Event | None:
        row = self.conn.execute(
            f"{_EVENT_SELECT} WHERE e.discord_event_id = ?", (remote_event_id,)
        ).fetchone()
        return _row_to_event(row) if row else None

    def list_events_by_series(self, series_id: str) -> list[Event]:
        rows = self.conn.execute(
            f"{_EVENT_SELECT} WHERE e.series_uuid = ? ORDER BY e.start_at ASC, e.id ASC",
            (series_id,),
        ).fetchall()
        return [_row_to_event(row) for row in rows]

    def list_events(self, since: datetime | None = None) -> list[Event]:
        """All events ordered by start, optionally only those ending at or after ``since``."""
        if since is None:
            rows = self.conn.execute(
                f"{_EVENT_SELECT} ORDER BY e.start_at ASC, e.id ASC"
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"{_EVENT_SELECT} WHERE e.end_at >= ? ORDER BY e.start_at ASC, e.id ASC",
                (format_instant(since),),
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def summary(self) -> dict[str, int]:
        """Counts used by the status command."""
        row = self.conn.execute("""
            SELECT
                COUNT(*)                                   AS events,
                COUNT(DISTINCT series_uuid)                AS series,
                SUM(CASE WHEN series_uuid IS NULL THEN 1 ELSE 0 END) AS standalone,
                SUM(CASE WHEN discord_event_id IS NOT NULL THEN 1 ELSE 0 END) AS linked
            FROM events
        """).fetchone()
        groups = self.conn.execute("SELECT COUNT(*) FROM working_groups").fetchone()[0]
        return {
            "events": row["events"] or 0,
            "series": row["series"] or 0,
            "standalone": row["standalone"] or 0,
            "linked": row["linked"] or 0,
            "working_groups": groups,
        }

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
