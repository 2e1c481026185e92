"""Main CLI entry point for mc-relay."""

from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv

from mc_relay.commands import console
from mc_relay.commands.backfill import backfill_command
from mc_relay.commands.log import log_command
from mc_relay.commands.serve import serve_command
from mc_relay.constants import VALID_LOG_LEVELS, VERSION

# Load .env file from current directory if it exists
load_dotenv(Path.cwd() / ".env", verbose=False)

app = typer.Typer(
    name="mc-relay",
    help="Mission Control activity relay and transcript backfill",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _config_option() -> Any:
    return typer.Option(
        None,
        "--config",
        "-c",
        help="YAML config file (relay:/backfill: sections)",
        exists=True,
        dir_okay=False,
    )


@app.command("serve")
def serve(
    config: Path | None = _config_option(),
    host: str | None = typer.Option(None, "--host", help="Interface to bind"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on"),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help=f"One of {', '.join(VALID_LOG_LEVELS)}",
        case_sensitive=False,
    ),
) -> None:
    """Run the relay daemon in the foreground.

    Buffered file reads are flushed on Ctrl+C / SIGTERM before exit.
    """
    if log_level is not None and log_level.upper() not in VALID_LOG_LEVELS:
        raise typer.BadParameter(f"Invalid log level: {log_level}", param_hint="--log-level")
    serve_command(config_file=config, host=host, port=port, log_level=log_level)


@app.command("backfill")
def backfill(
    directory: Path | None = typer.Option(
        None,
        "--dir",
        help="Scan this directory (or file) instead of the default transcript locations",
    ),
    since: str | None = typer.Option(
        None,
        "--since",
        help="Skip activities older than this ISO date/datetime",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-d",
        help="Classify and dedupe without posting or saving state",
    ),
    cron: bool = typer.Option(
        False,
        "--cron",
        help="Suppress non-essential output",
    ),
    config: Path | None = _config_option(),
) -> None:
    """Replay historical agent transcripts into the activity store.

    Resumes from saved per-file offsets and skips activities already in the
    store. Exits 1 if any activity failed to post.
    """
    backfill_command(
        directory=directory,
        since=since,
        dry_run=dry_run,
        cron=cron,
        config_file=config,
    )


@app.command("log")
def log(
    event: str | None = typer.Option(
        None,
        "--event",
        "-e",
        help="tool_call, cron_fire, message_sent, file_changed or error",
    ),
    title: str | None = typer.Option(None, "--title", "-t", help="Activity title"),
    description: str | None = typer.Option(None, "--desc", "--description", help="Details"),
    tool: str | None = typer.Option(None, "--tool", help="Tool name"),
    status: str = typer.Option("success", "--status", help="success, error or pending"),
    direct: bool = typer.Option(
        False,
        "--direct",
        help="Post straight to the store, bypassing the relay",
    ),
    use_stdin: bool = typer.Option(
        False,
        "--stdin",
        help="Read a RelayEvent JSON document from stdin",
    ),
) -> None:
    """Send one event to the relay (for agent hooks and shell scripts)."""
    log_command(
        event=event,
        title=title,
        description=description,
        tool=tool,
        status=status,
        direct=direct,
        use_stdin=use_stdin,
    )


@app.command("version")
def version() -> None:
    """Show version information."""
    console.print(f"[bold cyan]mc-relay[/bold cyan] version [green]{VERSION}[/green]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
