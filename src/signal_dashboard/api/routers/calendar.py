"""Google Calendar proxy endpoints.

- GET  /api/google/calendar   — list events (``timeMin``/``timeMax``/``calendarId``)
- POST /api/google/calendar   — create an event from a Google-shaped body
- GET  /api/google/calendars  — list the user's calendars

Every endpoint reads the ``google_tokens`` cookie, calls Google with the
access token and, on a 401 with a refresh token available, refreshes once,
rewrites the cookie and retries once.  Google's JSON is returned unmodified.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from signal_dashboard.api.deps import get_config, get_http_client
from signal_dashboard.api.middleware import error_response
from signal_dashboard.config import DashboardConfig
from signal_dashboard.errors import BadRequestError, DashboardError
from signal_dashboard.google_calendar import (
    DEFAULT_CALENDAR_ID,
    DEFAULT_MAX_RESULTS,
    GoogleCalendarClient,
)
from signal_dashboard.tokens import TOKEN_COOKIE_NAME, parse_token_cookie, set_token_cookie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/google", tags=["calendar"])

CalendarCall = Callable[[GoogleCalendarClient], Awaitable[dict[str, Any]]]


async def _proxy(
    request: Request,
    config: DashboardConfig,
    http_client: httpx.AsyncClient,
    call: CalendarCall,
) -> JSONResponse:
    """Run *call* against Google and persist refreshed tokens on the response.

    Missing or unreadable cookies raise before any vendor call.  When the
    token set was refreshed, the cookie is rewritten even if the retried
    call failed.
    """
    tokens = parse_token_cookie(request.cookies.get(TOKEN_COOKIE_NAME))
    client = GoogleCalendarClient(http_client, tokens, config)

    try:
        response = JSONResponse(content=await call(client))
    except DashboardError as exc:
        if not client.refreshed:
            raise
        response = error_response(exc)

    if client.refreshed:
        set_token_cookie(response, client.tokens, secure=config.cookie_secure)
    return response


@router.get("/calendar")
async def list_events(
    request: Request,
    time_min: str | None = Query(default=None, alias="timeMin"),
    time_max: str | None = Query(default=None, alias="timeMax"),
    calendar_id: str = Query(default=DEFAULT_CALENDAR_ID, alias="calendarId"),
    max_results: int = Query(default=DEFAULT_MAX_RESULTS, alias="maxResults", ge=1, le=2500),
    config: DashboardConfig = Depends(get_config),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> JSONResponse:
    """List events on *calendarId* starting at *timeMin* (default: now)."""
    return await _proxy(
        request,
        config,
        http_client,
        lambda client: client.list_events(
            calendar_id=calendar_id,
            time_min=time_min,
            time_max=time_max,
            max_results=max_results,
        ),
    )


@router.post("/calendar")
async def create_event(
    request: Request,
    calendar_id: str = Query(default=DEFAULT_CALENDAR_ID, alias="calendarId"),
    config: DashboardConfig = Depends(get_config),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> JSONResponse:
    """Create an event; the body is forwarded to Google verbatim."""
    # Cookie is checked before the body is parsed.
    parse_token_cookie(request.cookies.get(TOKEN_COOKIE_NAME))

    try:
        event = await request.json()
    except ValueError as exc:
        raise BadRequestError("Invalid JSON") from exc
    if not isinstance(event, dict):
        raise BadRequestError("Event body must be a JSON object")

    return await _proxy(
        request,
        config,
        http_client,
        lambda client: client.create_event(event, calendar_id=calendar_id),
    )


@router.get("/calendars")
async def list_calendars(
    request: Request,
    config: DashboardConfig = Depends(get_config),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> JSONResponse:
    """List the calendars on the user's calendar list."""
    return await _proxy(request, config, http_client, lambda client: client.list_calendars())
