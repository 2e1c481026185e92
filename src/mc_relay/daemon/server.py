"""FastAPI server for the Mission Control relay daemon.

This module creates the FastAPI application and manages the relay lifecycle.
Route handlers are organized in separate modules under daemon/routes/.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI

from mc_relay.activity.classifier import now_ms
from mc_relay.config import RelaySettings
from mc_relay.constants import (
    ACTIVITY_TRAIL_LOGGER,
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_MAX_BYTES,
    LOG_LEVEL_DEBUG,
    LOGGER_ROOT,
    VERSION,
)
from mc_relay.daemon.middleware import RequestSizeLimitMiddleware
from mc_relay.daemon.state import get_state
from mc_relay.relay.pipeline import RelayPipeline

logger = logging.getLogger(__name__)


def configure_logging(log_level: str, log_file: Path | None = None) -> None:
    """Configure logging for the relay.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path; rotated when set.
    """
    from logging.handlers import RotatingFileHandler

    level = getattr(logging, log_level.upper(), logging.INFO)

    relay_logger = logging.getLogger(LOGGER_ROOT)
    relay_logger.setLevel(level)

    # Uvicorn configures the root logger before lifespan runs
    relay_logger.propagate = False
    relay_logger.handlers.clear()

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    if level == logging.DEBUG:
        logging.getLogger("uvicorn.error").setLevel(logging.INFO)

    # The activity trail is always INFO, whatever the relay's level
    logging.getLogger(ACTIVITY_TRAIL_LOGGER).setLevel(logging.INFO)

    if level == logging.DEBUG:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                mode="a",
                maxBytes=DEFAULT_LOG_MAX_BYTES,
                backupCount=DEFAULT_LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            relay_logger.addHandler(file_handler)
            logging.getLogger("uvicorn.error").addHandler(file_handler)
            return
        except OSError as e:
            # Fall through to the stream handler so the warning is visible
            relay_logger.warning(f"Could not set up file logging to {log_file}: {e}")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    relay_logger.addHandler(stream_handler)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the relay lifecycle.

    Startup builds the pipeline (and its HTTP client). Shutdown, which
    uvicorn triggers on SIGINT/SIGTERM, drains every file-read bucket
    before the client is closed.
    """
    state = get_state()
    state.initialize()
    settings = state.settings

    configure_logging(settings.log_level, settings.log_file)
    logger.info(f"Mission Control relay starting up (log_level={settings.log_level})")
    if settings.log_level == LOG_LEVEL_DEBUG:
        logger.debug("Debug logging enabled - verbose output active")

    state.pipeline = RelayPipeline.from_settings(
        settings,
        client=state.sink_client,
        clock=state.clock or now_ms,
    )
    logger.info(f"Listening on http://{settings.host}:{settings.port}")
    logger.info(f"Forwarding to: {settings.sink_url}")

    yield

    logger.info("Initiating graceful shutdown...")
    flushed = await state.pipeline.shutdown()
    if flushed:
        logger.info(f"Forwarded {flushed} buffered activities during shutdown")
    state.pipeline = None
    logger.info("Mission Control relay shutdown complete")


def create_app(
    settings: RelaySettings | None = None,
    sink_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Relay settings; defaults plus environment when omitted.
        sink_client: Optional HTTP client for the sink. The caller keeps
            ownership of an injected client.
        clock: Optional epoch-milliseconds clock for the guards and batcher.

    Returns:
        Configured FastAPI application.
    """
    state = get_state()
    state.settings = settings or RelaySettings()
    state.sink_client = sink_client
    state.clock = clock

    app = FastAPI(
        title="Mission Control Relay",
        description="Classifies agent tool calls and forwards them to the activity store",
        version=VERSION,
        lifespan=lifespan,
    )
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=state.settings.max_body_bytes)

    from mc_relay.daemon.routes import events, health, tools

    app.include_router(health.router)
    app.include_router(events.router)
    app.include_router(tools.router)

    return app
