"""CLI command implementations - shared console helpers.

Each module holds the body of one ``mc-relay`` subcommand; the typer
option declarations live in ``mc_relay.cli``.
"""

import logging
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console

from mc_relay.config import load_settings
from mc_relay.exceptions import ConfigurationError

logger = logging.getLogger(__name__)
console = Console()
err_console = Console(stderr=True)

SettingsT = TypeVar("SettingsT")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_info(message: str) -> None:
    console.print(f"[cyan]{message}[/cyan]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]![/yellow] {message}")


def print_error(message: str) -> None:
    err_console.print(f"[bold red]✗[/bold red] {message}")


def load_settings_or_exit(settings_cls: type[SettingsT], config_file: Path | None) -> SettingsT:
    """Load settings, turning a ConfigurationError into exit code 1."""
    try:
        return load_settings(settings_cls, config_file)  # type: ignore[type-var]
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


__all__ = [
    "console",
    "err_console",
    "load_settings_or_exit",
    "logger",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
]
