"""
Discord guild scheduled-events API wrapper.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import httpx

from guild_calendar_sync.models import DEFAULT_API_BASE
from guild_calendar_sync.models import ConfigurationError
from guild_calendar_sync.models import ProviderError
from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.rules import RemoteRecurrenceRule

logger = logging.getLogger(__name__)


class EntityType(IntEnum):
    STAGE_INSTANCE = 1
    VOICE = 2
    EXTERNAL = 3


GUILD_ONLY = 2  # privacy_level


@dataclass
class RemoteScheduledEvent:
    """One guild scheduled event as returned by Discord."""

    id: str
    name: str
    description: str | None = None
    scheduled_start_time: str | None = None
    scheduled_end_time: str | None = None
    entity_type: int = EntityType.EXTERNAL
    location: str | None = None
    channel_id: str | None = None
    status: int | None = None
    recurrence_rule: RemoteRecurrenceRule | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteScheduledEvent":
        metadata = data.get("entity_metadata") or {}
        rule = data.get("recurrence_rule")
        return cls(
            id=str(data["id"]),
            name=(data.get("name") or "").strip(),
            description=data.get("description"),
            scheduled_start_time=data.get("scheduled_start_time"),
            scheduled_end_time=data.get("scheduled_end_time"),
            entity_type=data.get("entity_type", EntityType.EXTERNAL),
            location=metadata.get("location"),
            channel_id=data.get("channel_id"),
            status=data.get("status"),
            recurrence_rule=RemoteRecurrenceRule.from_api(rule) if rule else None,
        )


class DiscordClient:
    """Thin synchronous client for one guild's scheduled events."""

    def __init__(
        self,
        bot_token: str | None,
        guild_id: str | None,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not bot_token or not guild_id:
            raise ConfigurationError("Discord is not configured: bot token and guild id required")
        self.guild_id = guild_id
        self.client = httpx.Client(
            base_url=api_base.rstrip("/"),
            headers={
                "Authorization": f"Bot {bot_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: SyncConfig, **kwargs) -> "DiscordClient":
        return cls(
            config.bot_token,
            config.guild_id,
            api_base=config.api_base,
            timeout=config.request_timeout,
            **kwargs,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"Discord API request failed: {e}") from e
        if not response.is_success:
            raise ProviderError(
                f"Discord API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    def list_scheduled_events(self) -> list[RemoteScheduledEvent]:
        """Fetch every scheduled event of the guild."""
        response = self._request(
            "GET",
            f"/guilds/{self.guild_id}/scheduled-events",
            params={"with_user_count": "true"},
        )
        events = [RemoteScheduledEvent.from_api(item) for item in response.json()]
        logger.debug("Fetched %d scheduled event(s) for guild %s", len(events), self.guild_id)
        return events

    def create_scheduled_event(self, payload: dict[str, Any]) -> str:
        """Create a scheduled event and return the id Discord assigned."""
        response = self._request(
            "POST", f"/guilds/{self.guild_id}/scheduled-events", json=payload
        )
        return str(response.json()["id"])

    def patch_scheduled_event(self, remote_event_id: str, payload: dict[str, Any]):
        self._request(
            "PATCH",
            f"/guilds/{self.guild_id}/scheduled-events/{remote_event_id}",
            json=payload,
        )
