"""Legacy ``/events`` webhook: pre-titled events, forwarded without enrichment."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mc_relay.activity.models import parse_relay_event
from mc_relay.constants import ERROR_RATE_LIMITED, RELAY_EVENTS_PATH
from mc_relay.daemon.models import EventAccepted
from mc_relay.daemon.routes._utils import get_pipeline, read_json
from mc_relay.exceptions import InvalidPayloadError
from mc_relay.relay.pipeline import EventDisposition

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.post(RELAY_EVENTS_PATH)
async def post_event(request: Request) -> JSONResponse:
    """Rate-limit, dedupe and forward one RelayEvent.

    Responses:
        200 ``{ok, id, type}`` when forwarded, ``{ok, deduplicated}`` for a
        repeated title; 400 for a missing event/title; 429 when the event
        type was seen less than the rate-limit interval ago; 502 when the
        sink rejected the activity.
    """
    pipeline = get_pipeline()
    try:
        event = parse_relay_event(await read_json(request))
    except InvalidPayloadError as e:
        return JSONResponse({"error": e.message}, status_code=400)

    outcome = await pipeline.process_event(event)

    if outcome.disposition == EventDisposition.RATE_LIMITED:
        return JSONResponse({"error": ERROR_RATE_LIMITED, "event": event.event}, status_code=429)

    if outcome.disposition == EventDisposition.DEDUPLICATED:
        return JSONResponse({"ok": True, "deduplicated": True})

    if outcome.disposition == EventDisposition.FAILED or outcome.activity is None:
        error = outcome.result.error if outcome.result else None
        return JSONResponse({"ok": False, "error": error}, status_code=502)

    body = EventAccepted(
        id=outcome.result.id if outcome.result else None,
        type=outcome.activity.type.value,
    )
    return JSONResponse(body.model_dump(exclude_none=True))
