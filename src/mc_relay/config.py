"""Configuration management for the relay daemon and the backfill scanner.

Configuration follows a priority hierarchy:
1. Environment variables (MC_RELAY_* / MC_BACKFILL_*)
2. Optional YAML config file (``relay:`` / ``backfill:`` sections)
3. Hardcoded defaults in this module
"""

import logging
from pathlib import Path
from typing import Annotated, Any, TypeVar

import yaml
from pydantic import AfterValidator, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mc_relay.constants import (
    CONFIG_SECTION_BACKFILL,
    CONFIG_SECTION_RELAY,
    DEFAULT_BACKFILL_STATE_FILE,
    DEFAULT_DEDUP_WINDOW_MS,
    DEFAULT_FALLBACK_QUERY_LIMIT,
    DEFAULT_FILE_READ_BATCH_THRESHOLD,
    DEFAULT_FILE_READ_BATCH_WINDOW_MS,
    DEFAULT_MAX_BODY_BYTES,
    DEFAULT_MAX_SCAN_DEPTH,
    DEFAULT_QUERY_URL,
    DEFAULT_RANGE_QUERY_LIMIT,
    DEFAULT_RATE_LIMIT_MS,
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    DEFAULT_SINK_URL,
    DEFAULT_TRANSCRIPT_DIRS,
    ENV_PREFIX_BACKFILL,
    ENV_PREFIX_RELAY,
    LOG_LEVEL_INFO,
    VALID_LOG_LEVELS,
)
from mc_relay.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SettingsT = TypeVar("SettingsT", bound="_EnvFirstSettings")


def _normalize_log_level(value: str) -> str:
    level = str(value).upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value}. Must be one of {VALID_LOG_LEVELS}")
    return level


LogLevel = Annotated[str, AfterValidator(_normalize_log_level)]


class _EnvFirstSettings(BaseSettings):
    """Base settings where environment variables beat values from the config file.

    Values loaded from YAML are passed as init kwargs, which pydantic-settings
    would normally rank highest; the source order is swapped so the
    environment keeps the final word.
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings


class RelaySettings(_EnvFirstSettings):
    """Settings for the live relay daemon.

    Can be overridden via environment variables with the MC_RELAY_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX_RELAY, extra="ignore")

    host: str = Field(default=DEFAULT_RELAY_HOST, description="Interface to bind")
    port: int = Field(default=DEFAULT_RELAY_PORT, ge=1, le=65535)
    sink_url: str = Field(
        default=DEFAULT_SINK_URL,
        description="Activity-log endpoint of the external store",
    )
    sink_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Outbound timeout; None waits indefinitely",
    )
    rate_limit_ms: int = Field(default=DEFAULT_RATE_LIMIT_MS, ge=0)
    dedup_window_ms: int = Field(default=DEFAULT_DEDUP_WINDOW_MS, ge=0)
    file_read_batch_threshold: int = Field(default=DEFAULT_FILE_READ_BATCH_THRESHOLD, ge=1)
    file_read_batch_window_ms: int = Field(default=DEFAULT_FILE_READ_BATCH_WINDOW_MS, gt=0)
    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, gt=0)
    log_level: LogLevel = LOG_LEVEL_INFO
    log_file: Path | None = None


class BackfillSettings(_EnvFirstSettings):
    """Settings for the transcript backfill scanner.

    Can be overridden via environment variables with the MC_BACKFILL_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX_BACKFILL, extra="ignore")

    sink_url: str = DEFAULT_SINK_URL
    query_url: str = Field(
        default=DEFAULT_QUERY_URL,
        description="Base URL of the store's query API",
    )
    sink_timeout_seconds: float | None = Field(default=None, gt=0)
    state_path: Path = Path(DEFAULT_BACKFILL_STATE_FILE)
    scan_dirs: list[Path] = Field(default_factory=lambda: list(DEFAULT_TRANSCRIPT_DIRS))
    max_scan_depth: int = Field(default=DEFAULT_MAX_SCAN_DEPTH, ge=0)
    range_query_limit: int = Field(default=DEFAULT_RANGE_QUERY_LIMIT, ge=1)
    fallback_query_limit: int = Field(default=DEFAULT_FALLBACK_QUERY_LIMIT, ge=1)
    log_level: LogLevel = LOG_LEVEL_INFO

    def resolved_scan_dirs(self) -> list[Path]:
        """Scan roots with ``~`` expanded and made absolute."""
        return [path.expanduser().resolve() for path in self.scan_dirs]

    def resolved_state_path(self) -> Path:
        return self.state_path.expanduser().resolve()


_SECTIONS: dict[type[BaseSettings], str] = {
    RelaySettings: CONFIG_SECTION_RELAY,
    BackfillSettings: CONFIG_SECTION_BACKFILL,
}


def _read_config_section(config_file: Path, section: str) -> dict[str, Any]:
    try:
        with open(config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config YAML: {e}", config_file=config_file) from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read config: {e}", config_file=config_file) from e

    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping", config_file=config_file)

    section_data = data.get(section, data)
    if not isinstance(section_data, dict):
        raise ConfigurationError(
            f"Config section '{section}' must be a mapping",
            config_file=config_file,
            key=section,
        )
    return section_data


def load_settings(settings_cls: type[SettingsT], config_file: Path | None = None) -> SettingsT:
    """Build settings from defaults, an optional YAML file, and the environment.

    Args:
        settings_cls: ``RelaySettings`` or ``BackfillSettings``.
        config_file: Optional YAML file. Keys may sit at the top level or
            under the class's section (``relay`` / ``backfill``).

    Returns:
        Validated settings instance.

    Raises:
        ConfigurationError: If the file is unreadable or values fail validation.
    """
    overrides: dict[str, Any] = {}
    if config_file is not None:
        overrides = _read_config_section(config_file, _SECTIONS[settings_cls])
        logger.debug(f"Loaded {len(overrides)} config values from {config_file}")

    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", config_file=config_file) from e
