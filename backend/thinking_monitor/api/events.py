"""
Thinking Monitor - Ingestion API
=================================

Producer-facing endpoints. One event per POST; every accepted event goes
through the engine's serialized apply path before the response is sent.
"""

import json
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from thinking_monitor.api.deps import EngineDep, RateLimiterDep
from thinking_monitor.core.config import settings
from thinking_monitor.core.monitor.events import EventValidationError
from thinking_monitor.core.rate_limiter import RateLimiter
from thinking_monitor.core.schemas import IngestResponse, ValidationErrorResponse

logger = structlog.get_logger()

router = APIRouter(tags=["Ingestion"])

REJECTION_RESPONSES = {
    400: {"model": ValidationErrorResponse, "description": "Malformed or unknown event"},
    413: {"description": "Request body too large"},
    429: {"description": "Rate limit exceeded"},
}


# ==========================================================================
# Request Helpers
# ==========================================================================

def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request, limiter: RateLimiter) -> None:
    result = limiter.check(client_key(request))
    if not result.allowed:
        logger.warning("rate_limit_exceeded", client=client_key(request), path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": str(result.retry_after_seconds)},
        )


async def read_json_body(request: Request) -> Any:
    """Read and parse the body, enforcing the size limit before parsing."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > settings.MAX_BODY_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Request body exceeds {settings.MAX_BODY_SIZE} bytes",
        )

    body = await request.body()
    if len(body) > settings.MAX_BODY_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Request body exceeds {settings.MAX_BODY_SIZE} bytes",
        )

    try:
        return json.loads(body)
    except ValueError:
        raise EventValidationError("body", "request body is not valid JSON") from None


# ==========================================================================
# Endpoints
# ==========================================================================

@router.post(
    "/event",
    response_model=IngestResponse,
    responses=REJECTION_RESPONSES,
    summary="Ingest one monitor event",
)
async def ingest_event(
    request: Request,
    engine: EngineDep,
    limiter: RateLimiterDep,
) -> IngestResponse:
    """
    Accept a single camelCase event with a ``type`` discriminant.

    Rejections return 400 with the reason and the offending field; nothing
    is applied for a rejected event.
    """
    enforce_rate_limit(request, limiter)
    raw = await read_json_body(request)

    event = engine.ingest(raw)
    logger.debug("event_accepted", type=event.type)
    return IngestResponse(type=event.type)


@router.post(
    "/hooks/{hook_type}",
    response_model=IngestResponse,
    responses=REJECTION_RESPONSES,
    summary="Ingest a raw hook payload",
)
async def ingest_hook(
    hook_type: str,
    request: Request,
    engine: EngineDep,
    limiter: RateLimiterDep,
) -> IngestResponse:
    """
    Accept the snake_case payload of a producer hook script.

    The hook type is matched case-sensitively against PreToolUse,
    PostToolUse, SubagentStart, SubagentStop, SessionStart and SessionStop.
    """
    enforce_rate_limit(request, limiter)
    raw = await read_json_body(request)

    event = engine.ingest_hook(hook_type, raw)
    logger.debug("hook_accepted", hook_type=hook_type, type=event.type)
    return IngestResponse(type=event.type)
