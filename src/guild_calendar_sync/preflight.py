"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from guild_calendar_sync.models import SyncConfig
from guild_calendar_sync.sync.utils import is_http_link

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: SyncConfig, console: Console, need_discord: bool = True) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1-3. Discord credentials and endpoint
    if need_discord:
        if not cfg.bot_token:
            logger.error("Discord bot token is not configured")
            issues.append(
                (
                    "Bot token",
                    "not set",
                    "Set DISCORD_BOT_TOKEN or discord_bot_token in the config file",
                )
            )
        if not cfg.guild_id:
            logger.error("Discord guild id is not configured")
            issues.append(
                (
                    "Guild id",
                    "not set",
                    "Set DISCORD_GUILD_ID or discord_guild_id in the config file",
                )
            )
        elif not cfg.guild_id.isdigit():
            logger.error("Discord guild id is not a snowflake: %s", cfg.guild_id)
            issues.append(
                (
                    "Guild id",
                    f"{cfg.guild_id!r} is not numeric",
                    "Copy the server id from Discord (Developer Mode > Copy Server ID)",
                )
            )
        if not is_http_link(cfg.api_base):
            logger.error("Discord API base is not an http(s) URL: %s", cfg.api_base)
            issues.append(
                ("API base", f"{cfg.api_base!r} is not an http(s) URL", "Fix api_base")
            )

    # 4. Database parent dir writable + DB readable if it exists
    db_path = cfg.db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create database directory %s: %s", db_path.parent, e)
        issues.append(
            (
                "Database",
                f"{db_path}: {e}",
                f"Check permissions on {db_path.parent}",
            )
        )
    else:
        if db_path.exists():
            try:
                conn = sqlite3.connect(db_path)
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE takes the write lock and needs a journal file
                # alongside the database.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
                conn.close()
            except sqlite3.Error as e:
                logger.error("Database not readable/writable (%s): %s", db_path, e)
                issues.append(
                    (
                        "Database",
                        f"{db_path}: {e}",
                        f"Check permissions on {db_path.parent} "
                        f"(journal files must be creatable alongside the DB)",
                    )
                )

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
