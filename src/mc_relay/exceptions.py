"""Custom exceptions for the Mission Control relay.

All exceptions inherit from RelayError, allowing callers to catch every
relay-related error with a single except clause if desired.

Exception hierarchy:
    RelayError (base)
    ├── ConfigurationError
    ├── InvalidPayloadError
    ├── SinkError
    ├── RemoteQueryError
    └── BackfillError
"""

from pathlib import Path
from typing import Any


class RelayError(Exception):
    """Base exception for all relay errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize relay error.

        Args:
            message: Error description.
            details: Optional dictionary with additional context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(RelayError):
    """Raised when configuration is invalid or cannot be loaded.

    Examples:
        - Invalid YAML syntax in the config file
        - A config section that is not a mapping
        - Out-of-range values rejected by settings validation
    """

    def __init__(
        self,
        message: str,
        config_file: Path | None = None,
        key: str | None = None,
    ):
        """Initialize configuration error.

        Args:
            message: Error description.
            config_file: Path to the problematic config file.
            key: The configuration key that caused the error.
        """
        details = {}
        if config_file:
            details["config_file"] = str(config_file)
        if key:
            details["key"] = key
        super().__init__(message, details)
        self.config_file = config_file
        self.key = key


class InvalidPayloadError(RelayError):
    """Raised when an ingress payload does not have the expected shape.

    The message is returned verbatim to the caller in a 400 response,
    so no details are attached.
    """


class SinkError(RelayError):
    """Raised when posting an activity to the external sink fails.

    Covers transport failures (connection refused, DNS) and non-2xx replies.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ):
        """Initialize sink error.

        Args:
            message: Error description.
            url: The sink endpoint that was called.
            status_code: HTTP status code, when a response was received.
        """
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class RemoteQueryError(RelayError):
    """Raised when the store's query API cannot answer a request."""

    def __init__(self, message: str, function: str | None = None):
        details = {"function": function} if function else None
        super().__init__(message, details)
        self.function = function


class BackfillError(RelayError):
    """Raised when a backfill run cannot proceed (unreadable transcript, bad state path)."""

    def __init__(self, message: str, path: Path | None = None):
        details = {"path": str(path)} if path else None
        super().__init__(message, details)
        self.path = path
