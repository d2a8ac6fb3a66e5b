"""
Unit tests for DiscordClient against an httpx.MockTransport.
"""

import json

import httpx
import pytest

from guild_calendar_sync.discord_client import DiscordClient
from guild_calendar_sync.discord_client import EntityType
from guild_calendar_sync.models import ConfigurationError
from guild_calendar_sync.models import ProviderError
from tests.conftest import GUILD_ID
from tests.conftest import make_remote_event


def _client(handler) -> DiscordClient:
    return DiscordClient("secret-token", GUILD_ID, transport=httpx.MockTransport(handler))


class TestConfiguration:
    @pytest.mark.parametrize("token, guild", [(None, GUILD_ID), ("t", None), ("", "")])
    def test_missing_credentials(self, token, guild):
        with pytest.raises(ConfigurationError):
            DiscordClient(token, guild)

    def test_from_config(self, sync_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=[])

        with DiscordClient.from_config(
            sync_config, transport=httpx.MockTransport(handler)
        ) as client:
            client.list_scheduled_events()
        assert requests[0].url.host == "discord.com"
        assert requests[0].url.path == f"/api/v10/guilds/{GUILD_ID}/scheduled-events"


class TestListScheduledEvents:
    def test_request_shape_and_parsing(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200,
                json=[
                    make_remote_event(
                        "1",
                        recurrence_rule={"start": "2026-03-02T18:00:00+00:00", "frequency": 2},
                    ),
                    make_remote_event("2", entity_type=2, location=None, channel_id="9"),
                ],
            )

        events = _client(handler).list_scheduled_events()

        assert seen["method"] == "GET"
        assert seen["path"].endswith(f"/guilds/{GUILD_ID}/scheduled-events")
        assert seen["params"] == {"with_user_count": "true"}
        assert seen["auth"] == "Bot secret-token"
        assert [e.id for e in events] == ["1", "2"]
        assert events[0].location == "Community Hall"
        assert events[0].recurrence_rule.frequency == 2
        assert events[1].entity_type == EntityType.VOICE
        assert events[1].location is None
        assert events[1].channel_id == "9"

    def test_error_status_raises_provider_error(self):
        client = _client(lambda request: httpx.Response(401, text='{"message": "401: Unauthorized"}'))
        with pytest.raises(ProviderError) as excinfo:
            client.list_scheduled_events()
        assert excinfo.value.status_code == 401
        assert "Unauthorized" in excinfo.value.body

    def test_transport_failure_raises_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as excinfo:
            _client(handler).list_scheduled_events()
        assert excinfo.value.status_code is None


class TestWrites:
    def test_create_posts_payload_and_returns_id(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "1122334455", "name": "Standup"})

        remote_id = _client(handler).create_scheduled_event({"name": "Standup"})
        assert remote_id == "1122334455"
        assert seen["method"] == "POST"
        assert seen["path"].endswith(f"/guilds/{GUILD_ID}/scheduled-events")
        assert seen["body"] == {"name": "Standup"}

    def test_patch_targets_the_event(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            return httpx.Response(200, json={"id": "77"})

        _client(handler).patch_scheduled_event("77", {"name": "Renamed"})
        assert seen["method"] == "PATCH"
        assert seen["path"].endswith(f"/guilds/{GUILD_ID}/scheduled-events/77")

    def test_rejected_write_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"message": "Invalid Form Body"})

        with pytest.raises(ProviderError) as excinfo:
            _client(handler).create_scheduled_event({"name": ""})
        assert excinfo.value.status_code == 400
        assert len(calls) == 1
