"""``mc-relay serve``: run the relay daemon in the foreground."""

from pathlib import Path

import uvicorn

from mc_relay.config import RelaySettings
from mc_relay.daemon.server import create_app

from . import load_settings_or_exit, print_info


def serve_command(
    config_file: Path | None = None,
    host: str | None = None,
    port: int | None = None,
    log_level: str | None = None,
) -> None:
    """Start uvicorn with the relay app; command-line flags beat config and env."""
    settings = load_settings_or_exit(RelaySettings, config_file)
    overrides: dict[str, object] = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if log_level is not None:
        overrides["log_level"] = log_level.upper()
    if overrides:
        settings = settings.model_copy(update=overrides)

    print_info(f"MC relay listening on http://{settings.host}:{settings.port}")
    print_info(f"Forwarding to: {settings.sink_url}")

    # uvicorn maps SIGINT/SIGTERM to lifespan shutdown, which drains buckets
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="warning",
        access_log=False,
    )
