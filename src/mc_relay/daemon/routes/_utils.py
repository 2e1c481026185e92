"""Shared utilities for relay route handlers.

Ingress routes never let a malformed body escape as a 500: JSON decode
failures and shape errors surface as ``InvalidPayloadError`` and the route
turns them into a 400 with the message verbatim.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, Request

from mc_relay.constants import ERROR_INVALID_JSON
from mc_relay.daemon.state import get_state
from mc_relay.exceptions import InvalidPayloadError

if TYPE_CHECKING:
    from mc_relay.relay.pipeline import RelayPipeline

logger = logging.getLogger(__name__)


def get_pipeline() -> RelayPipeline:
    """Return the live pipeline.

    Raises:
        HTTPException: 503 when the lifespan has not built the pipeline yet.
    """
    pipeline = get_state().pipeline
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Relay pipeline not initialized")
    return pipeline


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; the sink could never accept them
    raise ValueError(f"Non-finite number {name} is not allowed")


async def read_json(request: Request) -> Any:
    """Decode the request body as strict JSON.

    Raises:
        InvalidPayloadError: If the body is not valid JSON or uses NaN/Infinity.
    """
    try:
        return json.loads(await request.body(), parse_constant=_reject_constant)
    except ValueError as e:
        logger.debug(f"Failed to parse JSON body on {request.url.path}: {e}")
        raise InvalidPayloadError(ERROR_INVALID_JSON) from e
