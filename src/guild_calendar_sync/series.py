"""
Series lifecycle: a series is always exactly the expansion of one rule.

Any change to the anchor event or its rule deletes the whole series and
generates it again.  Per-occurrence state attached to the deleted rows is
lost; carrying it forward is the caller's job.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime

from guild_calendar_sync.db import EventStore
from guild_calendar_sync.expander import expand
from guild_calendar_sync.models import Event
from guild_calendar_sync.models import EventDraft
from guild_calendar_sync.models import EventNotFoundError
from guild_calendar_sync.rules import CanonicalRule


class SeriesManager:
    """Creates, regenerates and deletes event series in an EventStore."""

    def __init__(self, store: EventStore, logger: logging.Logger | None = None):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    def create_series(
        self,
        base: EventDraft,
        rule: CanonicalRule,
        series_end: datetime,
        remote_event_id: str | None = None,
    ) -> list[Event]:
        """Expand ``rule`` from ``base`` and persist every occurrence in one batch.

        When ``remote_event_id`` is given only the first occurrence is linked.
        """
        series_id = str(uuid.uuid4())
        created: list[Event] = []
        with self.store.transaction():
            for occurrence in expand(base.start_at, base.end_at, rule, series_end):
                draft = replace(base, start_at=occurrence.start, end_at=occurrence.end)
                created.append(
                    self.store.create_event(
                        draft,
                        series_id=series_id,
                        rule=rule,
                        series_end_at=series_end,
                        remote_event_id=remote_event_id if not created else None,
                    )
                )
        self.logger.debug(
            f"Created series {series_id} with {len(created)} occurrence(s) ({rule.describe()})"
        )
        return created

    def regenerate_series(
        self,
        existing: Event | None,
        base: EventDraft,
        rule: CanonicalRule,
        series_end: datetime,
        remote_event_id: str | None = None,
    ) -> list[Event]:
        """Delete ``existing`` (its whole series if it has one) and create the series anew."""
        with self.store.transaction():
            if existing is not None:
                self._delete_existing(existing)
            return self.create_series(base, rule, series_end, remote_event_id=remote_event_id)

    def delete_series(self, series_id: str) -> int:
        with self.store.transaction():
            deleted = self.store.delete_events_by_series(series_id)
        self.logger.debug(f"Deleted series {series_id} ({deleted} row(s))")
        return deleted

    def _remote_link(self, existing: Event) -> str | None:
        if existing.remote_event_id or not existing.series_id:
            return existing.remote_event_id
        for member in self.store.list_events_by_series(existing.series_id):
            if member.remote_event_id:
                return member.remote_event_id
        return None

    def _delete_existing(self, existing: Event):
        if existing.series_id:
            self.logger.debug(f"Deleting existing series {existing.series_id}")
            self.store.delete_events_by_series(existing.series_id)
        else:
            self.logger.debug(f"Deleting single event {existing.id} for regeneration")
            self.store.delete_event_by_id(existing.id)

    # ------------------------------------------------------------------ #
    # Event-level entry points                                             #
    # ------------------------------------------------------------------ #

    def save_event(
        self,
        draft: EventDraft,
        rule: CanonicalRule | None = None,
        series_end: datetime | None = None,
    ) -> list[Event]:
        """Persist a new event; a rule turns it into a series."""
        if rule is None:
            return [self.store.create_event(draft)]
        return self.create_series(draft, rule, series_end)

    def update_event(
        self,
        event_id: int,
        draft: EventDraft,
        rule: CanonicalRule | None = None,
        series_end: datetime | None = None,
    ) -> list[Event]:
        """
        Apply an edit to an event.

        With a rule the whole series is regenerated from ``draft``.  Without
        one the edited row becomes a standalone event: the other members of its
        former series are deleted and its series tags are cleared.
        """
        existing = self.store.find_event_by_id(event_id)
        if existing is None:
            raise EventNotFoundError(f"Event {event_id} not found")

        if rule is not None:
            # The provider link moves to the new first occurrence so a later push patches it.
            return self.regenerate_series(
                existing, draft, rule, series_end, remote_event_id=self._remote_link(existing)
            )

        link = self._remote_link(existing)
        with self.store.transaction():
            if existing.series_id:
                for member in self.store.list_events_by_series(existing.series_id):
                    if member.id != existing.id:
                        self.store.delete_event_by_id(member.id)
            if link and link != existing.remote_event_id:
                self.store.set_remote_event_id(event_id, link)
            updated = self.store.update_event(event_id, draft)
        return [updated]

    def delete_event(self, event_id: int, whole_series: bool = False) -> int:
        existing = self.store.find_event_by_id(event_id)
        if existing is None:
            raise EventNotFoundError(f"Event {event_id} not found")
        if whole_series and existing.series_id:
            return self.delete_series(existing.series_id)
        self.store.delete_event_by_id(event_id)
        return 1
