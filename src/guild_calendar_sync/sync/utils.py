"""
Stateless helpers shared by the inbound and outbound sync passes.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote
from urllib.parse import urlparse

from guild_calendar_sync.discord_client import EntityType
from guild_calendar_sync.discord_client import RemoteScheduledEvent

# A description line carrying the working-group mapping, e.g.
#   ```working-group-id=Outreach```
_WORKING_GROUP_TAG_RE = re.compile(r"```working-group-id=(.+?)```", re.IGNORECASE)

DEFAULT_DESCRIPTION = "Discord event"
DISCORD_CHANNELS_URL = "https://discord.com/channels"
MAPS_SEARCH_URL = "https://maps.google.com/?q="


@dataclass
class ParsedDescription:
    working_group_name: str | None
    cleaned: str


@dataclass
class LocationDetails:
    link: str
    display_name: str | None


def parse_description(description: str | None) -> ParsedDescription:
    """Strip the working-group tag line(s) and return the tag value with the rest."""
    if not description:
        return ParsedDescription(None, "")
    name = None
    kept = []
    for line in description.split("\n"):
        match = _WORKING_GROUP_TAG_RE.search(line)
        if match:
            name = match.group(1).strip()
            continue
        kept.append(line)
    return ParsedDescription(name, "\n".join(kept).strip())


def append_working_group_tag(description: str, group_name: str | None) -> str:
    if not group_name:
        return description
    return f"{description}\n\n```working-group-id={group_name}```"


def is_http_link(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_location_details(event: RemoteScheduledEvent, guild_id: str) -> LocationDetails:
    """
    Derive the stored location link and display label for a Discord event.

    External events keep an http(s) location as-is, or turn free text into a
    map search.  Stage and voice events link into the Discord client.
    """
    if event.entity_type == EntityType.EXTERNAL:
        raw = (event.location or "").strip() or DEFAULT_DESCRIPTION
        if is_http_link(raw):
            return LocationDetails(raw, None)
        return LocationDetails(f"{MAPS_SEARCH_URL}{quote(raw, safe='')}", raw)

    link = f"{DISCORD_CHANNELS_URL}/{guild_id}"
    if event.channel_id:
        link = f"{link}/{event.channel_id}"
    label = "Discord stage" if event.entity_type == EntityType.STAGE_INSTANCE else "Discord voice"
    return LocationDetails(link, label)
