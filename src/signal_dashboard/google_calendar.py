"""Google Calendar proxy with refresh-once-on-401 semantics.

``GoogleCalendarClient`` issues a vendor request with the access token from
the caller's cookie.  When Google answers 401 and the token set carries a
refresh token, the client refreshes exactly once, keeps the new token set on
``self.tokens`` (so the caller can rewrite the cookie) and retries the
original request exactly once.  Vendor JSON bodies are returned unmodified.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from signal_dashboard.config import DashboardConfig
from signal_dashboard.errors import BadUpstreamResponseError, UpstreamError
from signal_dashboard.google_oauth import refresh_tokens
from signal_dashboard.tokens import TokenSet

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
DEFAULT_CALENDAR_ID = "primary"
DEFAULT_MAX_RESULTS = 250


def google_rfc3339(value: datetime) -> str:
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _vendor_error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        text = response.text.strip()
        return text or None


class GoogleCalendarClient:
    """Per-request Google Calendar client bound to one token set."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        tokens: TokenSet,
        config: DashboardConfig,
    ) -> None:
        self._http_client = http_client
        self._config = config
        self.tokens = tokens
        self.refreshed = False

    async def list_events(
        self,
        *,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> dict[str, Any]:
        """List events from ``time_min`` (default: now) onwards.

        The upper bound is only sent when *time_max* is supplied.
        """
        params: dict[str, Any] = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": max_results,
            "timeMin": time_min or google_rfc3339(datetime.now(UTC)),
        }
        if time_max:
            params["timeMax"] = time_max

        response = await self._request(
            "GET",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            params=params,
        )
        if not response.is_success:
            logger.warning(
                "Google Calendar list events failed (status=%d, calendar=%s)",
                response.status_code,
                calendar_id,
            )
            raise UpstreamError("Failed to fetch events")
        return self._json_body(response)

    async def list_calendars(self) -> dict[str, Any]:
        response = await self._request("GET", "/users/me/calendarList")
        if not response.is_success:
            logger.warning("Google calendar list failed (status=%d)", response.status_code)
            raise UpstreamError("Failed to fetch calendars")
        return self._json_body(response)

    async def create_event(
        self,
        event: dict[str, Any],
        *,
        calendar_id: str = DEFAULT_CALENDAR_ID,
    ) -> dict[str, Any]:
        """Create *event* (vendor-shaped) verbatim on *calendar_id*."""
        response = await self._request(
            "POST",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            json_body=event,
        )
        if not response.is_success:
            logger.warning(
                "Google Calendar create event failed (status=%d, calendar=%s)",
                response.status_code,
                calendar_id,
            )
            raise UpstreamError("Failed to create event", details=_vendor_error_body(response))
        return self._json_body(response)

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{GOOGLE_CALENDAR_API_BASE_URL}{path}"
        response = await self._send(method, url, params=params, json_body=json_body)

        if response.status_code == 401 and self.tokens.refresh_token:
            client_id, client_secret = self._config.require_google_client()
            self.tokens = await refresh_tokens(
                self._http_client,
                self.tokens,
                client_id=client_id,
                client_secret=client_secret,
            )
            self.refreshed = True
            response = await self._send(method, url, params=params, json_body=json_body)

        return response

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.tokens.access_token}"}
        try:
            return await self._http_client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Google Calendar request failed: {exc}") from exc

    @staticmethod
    def _json_body(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BadUpstreamResponseError(
                "Google Calendar API returned invalid JSON for a successful response"
            ) from exc
        if not isinstance(payload, dict):
            raise BadUpstreamResponseError(
                "Google Calendar API returned an unexpected JSON payload shape"
            )
        return payload
