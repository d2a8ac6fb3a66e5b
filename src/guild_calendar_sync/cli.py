"""
Command-line interface for Guild Calendar Sync.
"""

import logging
import os
import time
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from pathlib import Path
from typing import Annotated
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from guild_calendar_sync.db import EventStore
from guild_calendar_sync.expander import expand
from guild_calendar_sync.models import DEFAULT_API_BASE
from guild_calendar_sync.models import DEFAULT_CONFIG
from guild_calendar_sync.models import DEFAULT_DB
from guild_calendar_sync.models import CalendarSyncError
from guild_calendar_sync.models import Event
from guild_calendar_sync.models import EventNotFoundError
from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.normalizer import normalize_dict
from guild_calendar_sync.normalizer import validate_event_payload
from guild_calendar_sync.rules import WEEKDAY_NAMES
from guild_calendar_sync.rules import format_instant
from guild_calendar_sync.rules import parse_instant
from guild_calendar_sync.series import SeriesManager
from guild_calendar_sync.sync import CalendarSynchronizer

CONFIG_SECTION = "guild-calendar-sync"

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Recurring event calendar with two-way Discord scheduled-event sync.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    db_path: Path = field(default_factory=lambda: DEFAULT_DB)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    db: Annotated[
        Path,
        typer.Option("--db", help=f"Event database path (default: {DEFAULT_DB})"),
    ] = DEFAULT_DB,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.db_path = db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _build_config(
    bot_token: str | None = None,
    guild_id: str | None = None,
    interval_minutes: int | None = None,
) -> SyncConfig:
    """Config file, then environment, then command-line options."""
    config_file = _load_config_file(state.config_path)

    try:
        timeout = float(config_file.get("request_timeout", 30.0))
        interval = int(config_file.get("sync_interval_minutes", 15))
    except ValueError as e:
        console.print(f"[bold red]Error:[/] Invalid value in {state.config_path}: {e}")
        raise typer.Exit(1) from None

    return SyncConfig(
        db_path=state.db_path,
        bot_token=bot_token
        or os.environ.get("DISCORD_BOT_TOKEN")
        or config_file.get("discord_bot_token"),
        guild_id=guild_id
        or os.environ.get("DISCORD_GUILD_ID")
        or config_file.get("discord_guild_id"),
        api_base=config_file.get("api_base", DEFAULT_API_BASE),
        request_timeout=timeout,
        sync_interval_minutes=interval_minutes or interval,
        verbose=state.verbose,
    )


def _preflight(cfg: SyncConfig, need_discord: bool = True) -> None:
    from guild_calendar_sync.preflight import run_preflight_checks

    if not run_preflight_checks(cfg, console, need_discord=need_discord):
        raise typer.Exit(1)


def _fail(prefix: str, error: Exception) -> typer.Exit:
    console.print(f"[bold red]{prefix}:[/] {error}")
    return typer.Exit(1)


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "—"


def _parse_weekday(value: str) -> int:
    token = value.strip().upper()
    if token in WEEKDAY_NAMES:
        return WEEKDAY_NAMES.index(token)
    if token.isdigit() and 0 <= int(token) <= 6:
        return int(token)
    raise typer.BadParameter(f"{value!r} is not a weekday (MO..SU or 0..6)")


def _parse_nth(value: str) -> dict[str, int]:
    """'2:TU' -> second Tuesday."""
    n, sep, day = value.partition(":")
    if not sep or not n.strip().isdigit():
        raise typer.BadParameter(f"{value!r} is not N:DAY (e.g. 2:TU)")
    return {"n": int(n), "day": _parse_weekday(day)}


def _recurrence_body(
    freq: str | None,
    interval: int | None,
    weekday: list[str] | None,
    nth: str | None,
    month_day: int | None,
) -> dict[str, Any] | None:
    if freq is None:
        if weekday or nth or month_day is not None or interval is not None:
            raise typer.BadParameter("recurrence options need --freq")
        return None
    body: dict[str, Any] = {"frequency": freq}
    if interval is not None:
        body["interval"] = interval
    if weekday:
        body["by_weekday"] = [_parse_weekday(w) for w in weekday]
    if nth:
        body["by_n_weekday"] = [_parse_nth(nth)]
    if month_day is not None:
        body["by_month_day"] = [month_day]
    return body


def _resolve_group_id(store: EventStore, group: str) -> int:
    found = store.find_working_group_by_name(group)
    if found is None and group.isdigit():
        found = store.find_working_group_by_id(int(group))
    if found is None:
        console.print(f"[bold red]Error:[/] Working group [cyan]{group}[/] not found.")
        raise typer.Exit(1)
    return found.id


def _events_table(events: list[Event], title: str | None = None) -> Table:
    table = Table(show_header=True, header_style="bold cyan", title=title)
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Title")
    table.add_column("Group")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Series", style="dim")
    table.add_column("Discord", style="dim")
    for event in events:
        table.add_row(
            str(event.id),
            event.title,
            event.working_group_name or str(event.working_group_id),
            _fmt(event.start_at),
            _fmt(event.end_at),
            (event.series_id or "")[:8],
            event.remote_event_id or "",
        )
    return table


def _push(cfg: SyncConfig, event_id: int) -> Event:
    try:
        event = CalendarSynchronizer(cfg).push(event_id)
    except CalendarSyncError as e:
        raise _fail("Push failed", e) from None
    console.print(
        f"Event [bold]{event.id}[/] pushed to Discord as [cyan]{event.remote_event_id}[/]"
    )
    return event


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

_TOKEN_OPT = Annotated[
    str | None,
    typer.Option("--token", help="Discord bot token (overrides env and config)"),
]
_GUILD_OPT = Annotated[
    str | None,
    typer.Option("--guild", "-g", help="Discord guild id (overrides env and config)"),
]
_FREQ_OPT = Annotated[
    str | None,
    typer.Option("--freq", help="Repeat frequency: daily, weekly or monthly"),
]
_INTERVAL_OPT = Annotated[int | None, typer.Option("--interval", help="Repeat interval")]
_WEEKDAY_OPT = Annotated[
    list[str] | None,
    typer.Option("--weekday", help="Weekday MO..SU or 0..6 (repeatable for daily rules)"),
]
_NTH_OPT = Annotated[
    str | None,
    typer.Option("--nth", help="Monthly on the N-th weekday, e.g. 2:TU"),
]
_MONTH_DAY_OPT = Annotated[
    int | None,
    typer.Option("--month-day", help="Monthly on this day of the month"),
]
_UNTIL_OPT = Annotated[
    str | None,
    typer.Option("--until", help="Series end (ISO timestamp, inclusive)"),
]
_PUSH_OPT = Annotated[bool, typer.Option("--push", help="Push the result to Discord")]


# ---------------------------------------------------------------------------
# Subcommand: sync
# ---------------------------------------------------------------------------


@app.command()
def sync(token: _TOKEN_OPT = None, guild: _GUILD_OPT = None) -> None:
    """Pull Discord scheduled events into the local calendar."""
    cfg = _build_config(token, guild)
    _preflight(cfg)

    info = Text()
    info.append("  Guild:     ", style="bold")
    info.append(f"{cfg.guild_id}\n")
    info.append("  Database:  ", style="bold")
    info.append(f"{cfg.db_path}\n")
    info.append("  Operation: ", style="bold")
    info.append("SYNC (Discord → local)", style="bold green")
    console.print(Panel(info, title="[bold]Guild Calendar Sync[/bold]"))

    try:
        stats = CalendarSynchronizer(cfg).run()
    except CalendarSyncError as e:
        raise _fail("Sync failed", e) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e

    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Created/updated", str(stats.created_or_updated))
    skipped_val = Text(str(stats.skipped))
    if stats.skipped == 0:
        skipped_val.append(" ✓", style="green")
    else:
        skipped_val.stylize("yellow")
    results.add_row("Skipped", skipped_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommand: push
# ---------------------------------------------------------------------------


@app.command()
def push(
    event_id: Annotated[int, typer.Argument(help="Local event id")],
    token: _TOKEN_OPT = None,
    guild: _GUILD_OPT = None,
) -> None:
    """Create or update the Discord counterpart of a local event."""
    cfg = _build_config(token, guild)
    _preflight(cfg)
    _push(cfg, event_id)


# ---------------------------------------------------------------------------
# Subcommands: create / update / delete
# ---------------------------------------------------------------------------


@app.command()
def create(
    title: Annotated[str, typer.Option("--title", "-t", help="Event title")],
    group: Annotated[str, typer.Option("--group", help="Working group name or id")],
    start: Annotated[str, typer.Option("--start", help="Start (ISO timestamp)")],
    end: Annotated[str, typer.Option("--end", help="End (ISO timestamp)")],
    location: Annotated[str, typer.Option("--location", "-l", help="Location or link")],
    description: Annotated[str, typer.Option("--description", "-d")] = "",
    location_name: Annotated[
        str | None, typer.Option("--location-name", help="Location display name")
    ] = None,
    freq: _FREQ_OPT = None,
    interval: _INTERVAL_OPT = None,
    weekday: _WEEKDAY_OPT = None,
    nth: _NTH_OPT = None,
    month_day: _MONTH_DAY_OPT = None,
    until: _UNTIL_OPT = None,
    push: _PUSH_OPT = False,
) -> None:
    """Create an event, or a whole series when [cyan]--freq[/] is given."""
    cfg = _build_config()
    _preflight(cfg, need_discord=push)

    with EventStore(cfg.db_path) as store:
        body = {
            "title": title,
            "description": description or title,
            "working_group_id": _resolve_group_id(store, group),
            "start_at": start,
            "end_at": end,
            "location": location,
            "location_display_name": location_name,
            "recurrence_rule": _recurrence_body(freq, interval, weekday, nth, month_day),
            "series_end_at": until,
        }
        try:
            draft, rule, series_end = validate_event_payload(body)
            created = SeriesManager(store).save_event(draft, rule, series_end)
        except CalendarSyncError as e:
            raise _fail("Invalid event", e) from None

    title_text = f"Created {len(created)} event(s)"
    if rule is not None:
        title_text += f" ({rule.describe()})"
    console.print(_events_table(created, title=title_text))

    if push:
        _push(cfg, created[0].id)


@app.command()
def update(
    event_id: Annotated[int, typer.Argument(help="Local event id")],
    title: Annotated[str | None, typer.Option("--title", "-t")] = None,
    group: Annotated[str | None, typer.Option("--group", help="Working group name or id")] = None,
    start: Annotated[str | None, typer.Option("--start", help="Start (ISO timestamp)")] = None,
    end: Annotated[str | None, typer.Option("--end", help="End (ISO timestamp)")] = None,
    location: Annotated[str | None, typer.Option("--location", "-l")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d")] = None,
    location_name: Annotated[str | None, typer.Option("--location-name")] = None,
    freq: _FREQ_OPT = None,
    interval: _INTERVAL_OPT = None,
    weekday: _WEEKDAY_OPT = None,
    nth: _NTH_OPT = None,
    month_day: _MONTH_DAY_OPT = None,
    until: _UNTIL_OPT = None,
    no_repeat: Annotated[
        bool, typer.Option("--no-repeat", help="Turn the event into a single occurrence")
    ] = False,
    push: _PUSH_OPT = False,
) -> None:
    """Edit an event.

    A recurring event keeps its rule unless [cyan]--freq[/] replaces it or
    [cyan]--no-repeat[/] drops it; either way the series is rebuilt from the
    edited occurrence.
    """
    cfg = _build_config()
    _preflight(cfg, need_discord=push)

    with EventStore(cfg.db_path) as store:
        existing = store.find_event_by_id(event_id)
        if existing is None:
            raise _fail("Error", EventNotFoundError(f"Event {event_id} not found"))

        recurrence = _recurrence_body(freq, interval, weekday, nth, month_day)
        series_end = until
        if recurrence is None and not no_repeat and existing.rule is not None:
            recurrence = existing.rule.to_dict()
            series_end = series_end or format_instant(existing.series_end_at)
        if no_repeat:
            recurrence = None
            series_end = None

        body = {
            "title": title or existing.title,
            "description": description if description is not None else existing.description,
            "working_group_id": (
                _resolve_group_id(store, group) if group else existing.working_group_id
            ),
            "start_at": start or format_instant(existing.start_at),
            "end_at": end or format_instant(existing.end_at),
            "location": location or existing.location,
            "location_display_name": (
                location_name if location_name is not None else existing.location_display_name
            ),
            "recurrence_rule": recurrence,
            "series_end_at": series_end,
        }
        try:
            draft, rule, series_end_at = validate_event_payload(body)
            updated = SeriesManager(store).update_event(event_id, draft, rule, series_end_at)
        except CalendarSyncError as e:
            raise _fail("Invalid event", e) from None

    console.print(_events_table(updated, title=f"Updated {len(updated)} event(s)"))

    if push:
        _push(cfg, updated[0].id)


@app.command()
def delete(
    event_id: Annotated[int, typer.Argument(help="Local event id")],
    series: Annotated[
        bool, typer.Option("--series", help="Delete every occurrence of the event's series")
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete an event (or its whole series) from the local calendar."""
    cfg = _build_config()

    with EventStore(cfg.db_path) as store:
        existing = store.find_event_by_id(event_id)
        if existing is None:
            raise _fail("Error", EventNotFoundError(f"Event {event_id} not found"))
        scope = "the whole series of" if series and existing.series_id else "event"
        if not yes:
            typer.confirm(f"Delete {scope} {event_id} ({existing.title!r})?", abort=True)
        deleted = SeriesManager(store).delete_event(event_id, whole_series=series)

    console.print(f"Deleted [bold]{deleted}[/] event(s)")


# ---------------------------------------------------------------------------
# Subcommand: preview
# ---------------------------------------------------------------------------


@app.command()
def preview(
    start: Annotated[str, typer.Option("--start", help="Anchor start (ISO timestamp)")],
    freq: Annotated[str, typer.Option("--freq", help="daily, weekly or monthly")],
    until: Annotated[str, typer.Option("--until", help="Series end (ISO timestamp)")],
    end: Annotated[str | None, typer.Option("--end", help="Anchor end (default +1h)")] = None,
    interval: _INTERVAL_OPT = None,
    weekday: _WEEKDAY_OPT = None,
    nth: _NTH_OPT = None,
    month_day: _MONTH_DAY_OPT = None,
    limit: Annotated[int, typer.Option("--limit", help="Show at most this many")] = 50,
) -> None:
    """Expand a recurrence rule without saving anything."""
    try:
        start_at = parse_instant(start)
        end_at = parse_instant(end) if end else start_at + timedelta(hours=1)
        series_end = parse_instant(until)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from None

    try:
        rule = normalize_dict(
            _recurrence_body(freq, interval, weekday, nth, month_day), start_at
        )
    except CalendarSyncError as e:
        raise _fail("Invalid rule", e) from None

    table = Table(show_header=True, header_style="bold cyan", title=rule.describe())
    table.add_column("#", justify="right", style="bold")
    table.add_column("Start")
    table.add_column("End")
    shown = 0
    for i, occurrence in enumerate(expand(start_at, end_at, rule, series_end), 1):
        if i > limit:
            table.add_row("…", "", "")
            break
        table.add_row(str(i), _fmt(occurrence.start), _fmt(occurrence.end))
        shown = i
    console.print(table)
    console.print(f"[dim]{shown} occurrence(s) shown[/dim]")


# ---------------------------------------------------------------------------
# Subcommands: events / groups / add-group
# ---------------------------------------------------------------------------


@app.command()
def events(
    show_all: Annotated[
        bool, typer.Option("--all", "-a", help="Include events that already ended")
    ] = False,
) -> None:
    """List events in the local calendar."""
    cfg = _build_config()
    since = None if show_all else datetime.now().astimezone()
    with EventStore(cfg.db_path) as store:
        rows = store.list_events(since=since)
    if not rows:
        console.print("[yellow]No events.[/]")
        return
    console.print(_events_table(rows))


@app.command("add-group")
def add_group(
    name: Annotated[str, typer.Argument(help="Working group name, as used in Discord tags")],
    description: Annotated[str, typer.Option("--description", "-d")] = "",
) -> None:
    """Add a working group."""
    cfg = _build_config()
    with EventStore(cfg.db_path) as store:
        if store.find_working_group_by_name(name.strip()):
            console.print(f"[yellow]Working group {name!r} already exists.[/]")
            raise typer.Exit(1)
        group = store.create_working_group(name.strip(), description)
    console.print(f"Working group [bold]{group.name}[/] created with id {group.id}")


@app.command()
def groups() -> None:
    """List working groups."""
    cfg = _build_config()
    with EventStore(cfg.db_path) as store:
        rows = store.list_working_groups()
    if not rows:
        console.print("[yellow]No working groups yet, add one with[/] [cyan]add-group[/]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Name")
    table.add_column("Description")
    for group in rows:
        table.add_row(str(group.id), group.name, group.description)
    console.print(table)


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and database summary."""
    cfg = _build_config()
    config_exists = state.config_path.exists()
    db_exists = cfg.db_path.exists()

    cfg_info = Text()
    cfg_info.append("  Config:   ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  Database: ", style="bold")
    cfg_info.append(str(cfg.db_path) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    cfg_info.append("\n  Guild:    ", style="bold")
    cfg_info.append(cfg.guild_id or "(not set)", style="" if cfg.guild_id else "red")
    cfg_info.append("\n  Token:    ", style="bold")
    cfg_info.append("set" if cfg.bot_token else "(not set)", style="" if cfg.bot_token else "red")
    cfg_info.append("\n  Interval: ", style="bold")
    cfg_info.append(f"{cfg.sync_interval_minutes} min")

    console.print(Panel(cfg_info, title="[bold]Guild Calendar Sync: Status[/bold]"))

    if not db_exists:
        console.print(
            "[yellow]No database yet, run[/] [cyan]guild-calendar-sync sync[/] "
            "[yellow]to create it.[/]"
        )
        return

    with EventStore(cfg.db_path) as store:
        summary = store.summary()

    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")
    table.add_row("Events", str(summary["events"]))
    table.add_row("Series", str(summary["series"]))
    table.add_row("Standalone", str(summary["standalone"]))
    table.add_row("Linked to Discord", str(summary["linked"]))
    table.add_row("Working groups", str(summary["working_groups"]))
    console.print(Panel(table, title="[bold]Database[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommand: watch
# ---------------------------------------------------------------------------


@app.command()
def watch(
    token: _TOKEN_OPT = None,
    guild: _GUILD_OPT = None,
    interval: Annotated[
        int | None, typer.Option("--interval", "-i", help="Minutes between passes")
    ] = None,
) -> None:
    """Run the inbound sync periodically until interrupted."""
    from guild_calendar_sync.scheduler import SyncScheduler

    cfg = _build_config(token, guild, interval_minutes=interval)
    _preflight(cfg)

    scheduler = SyncScheduler(CalendarSynchronizer(cfg).run, cfg.sync_interval_minutes)
    scheduler.start(run_immediately=True)
    console.print(
        f"Syncing guild [cyan]{cfg.guild_id}[/] every {cfg.sync_interval_minutes} minute(s). "
        "Press Ctrl+C to stop."
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("[yellow]Stopping…[/]")
    finally:
        scheduler.stop()


def main() -> None:
    app()
