"""Mission Control relay: activity telemetry ingestion and transcript backfill."""

from mc_relay.constants import VERSION

__version__ = VERSION

__all__ = ["__version__"]
