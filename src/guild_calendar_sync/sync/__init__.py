"""
CalendarSynchronizer: thin orchestrator that delegates to sync submodules.
"""

import logging

from guild_calendar_sync.db import EventStore
from guild_calendar_sync.discord_client import DiscordClient
from guild_calendar_sync.models import Event
from guild_calendar_sync.models import EventNotFoundError
from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.models import SyncStats
from guild_calendar_sync.sync.inbound import run_inbound
from guild_calendar_sync.sync.outbound import push_event


class CalendarSynchronizer:
    """Main synchronization engine."""

    def __init__(self, config: SyncConfig, client=None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self._client = client

    def _open_client(self):
        # An injected client is owned by the caller and never closed here.
        if self._client is not None:
            return self._client, False
        return DiscordClient.from_config(self.config), True

    def run(self) -> SyncStats:
        """Execute one inbound synchronization pass."""
        stats = SyncStats()
        client, owned = self._open_client()
        try:
            with EventStore(self.config.db_path) as store:
                run_inbound(self.config, stats, self.logger, client, store)
        finally:
            if owned:
                client.close()
        return stats

    def push(self, event_id: int) -> Event:
        """Push one local event (or the series it belongs to) to Discord."""
        client, owned = self._open_client()
        try:
            with EventStore(self.config.db_path) as store:
                event = store.find_event_by_id(event_id)
                if event is None:
                    raise EventNotFoundError(f"Event {event_id} not found")
                return push_event(self.config, self.logger, client, store, event)
        finally:
            if owned:
                client.close()
