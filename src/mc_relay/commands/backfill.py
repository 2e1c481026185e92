"""``mc-relay backfill``: replay historical transcripts into the store."""

import logging
from datetime import datetime
from pathlib import Path

import typer
from rich.logging import RichHandler
from rich.table import Table

from mc_relay.activity.models import ActivityRecord
from mc_relay.backfill.scanner import BackfillReport, run_backfill
from mc_relay.backfill.transcript import parse_iso_ms
from mc_relay.config import BackfillSettings
from mc_relay.constants import LOGGER_ROOT
from mc_relay.exceptions import BackfillError, RemoteQueryError

from . import console, load_settings_or_exit, print_error, print_info

logger = logging.getLogger(__name__)


def parse_since(value: str | None) -> float | None:
    """Parse ``--since`` (ISO date or datetime) to epoch ms.

    Raises:
        typer.BadParameter: On an unparseable value (exit code 2).
    """
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise typer.BadParameter(f"Invalid --since value: {value}") from e
    return parse_iso_ms(parsed)


def _configure_cli_logging(level: str, quiet: bool) -> None:
    root = logging.getLogger(LOGGER_ROOT)
    root.handlers.clear()
    root.propagate = False
    root.setLevel(logging.ERROR if quiet else getattr(logging, level, logging.INFO))
    root.addHandler(RichHandler(console=console, show_path=False, show_time=False))


def _print_dry_run(activity: ActivityRecord) -> None:
    moment = datetime.fromtimestamp(activity.timestamp / 1000).astimezone()
    console.print(
        f"[dim]\\[dry-run][/dim] {moment.isoformat(timespec='seconds')} "
        f"[cyan]{activity.type.value}[/cyan] {activity.title}",
        highlight=False,
    )


def _print_summary(report: BackfillReport, state_path: Path, dry_run: bool) -> None:
    stats = report.stats
    table = Table(title="Backfill summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Files discovered", str(report.files_discovered))
    table.add_row("Files processed", str(report.files_processed))
    table.add_row("Activities sent", str(stats.sent))
    table.add_row("Activities dry-run", str(stats.dry_run))
    table.add_row("Skipped by --since", str(stats.skipped_since))
    table.add_row("Skipped duplicate in run", str(stats.skipped_duplicate_run))
    table.add_row("Skipped duplicate in store", str(stats.skipped_duplicate_remote))
    table.add_row("Parse errors", str(stats.parse_errors))
    table.add_row("Post errors", str(stats.post_errors))
    table.add_row("State file", f"{state_path}{' (not written)' if dry_run else ''}")
    console.print(table)


def backfill_command(
    directory: Path | None = None,
    since: str | None = None,
    dry_run: bool = False,
    cron: bool = False,
    config_file: Path | None = None,
) -> None:
    """Run one backfill pass and exit non-zero if any post failed."""
    since_ms = parse_since(since)
    settings = load_settings_or_exit(BackfillSettings, config_file)
    _configure_cli_logging(settings.log_level, quiet=cron)

    roots = [directory.expanduser().resolve()] if directory else None
    if not cron:
        scope = f"directory {roots[0]}" if roots else "default transcript locations"
        print_info(f"Scanning {scope}")
        if since_ms is not None:
            print_info(f"Since {since}")
        if dry_run:
            print_info("Dry-run mode enabled")

    try:
        report = run_backfill(
            settings,
            roots=roots,
            since_ms=since_ms,
            dry_run=dry_run,
            on_dry_run=None if cron else _print_dry_run,
        )
    except (BackfillError, RemoteQueryError) as e:
        print_error(f"Backfill failed: {e}")
        raise typer.Exit(code=1) from e

    if not cron:
        _print_summary(report, settings.resolved_state_path(), dry_run)

    if report.exit_code:
        raise typer.Exit(code=report.exit_code)
