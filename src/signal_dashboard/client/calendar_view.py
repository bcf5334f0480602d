"""Calendar view state: auth probe, week navigation, selection, merge and layout.

``CalendarView`` talks to the dashboard's own calendar endpoints (never to
Google directly) and keeps the state a week view needs:

- ``state``: ``unknown`` until the first probe, then ``unauthenticated`` or
  ``authenticated``
- ``week_start``: first day (Sunday) of the displayed week
- ``calendars`` / ``selected_ids``: the calendar list and the selection
- ``events``: all selected calendars' events for the week, merged and sorted

Failures set ``error`` and leave already-loaded state untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from enum import StrEnum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

EVENTS_ENDPOINT = "/api/google/calendar"
CALENDARS_ENDPOINT = "/api/google/calendars"
AUTH_ENDPOINT = "/api/google/auth"

PRIMARY_CALENDAR_ID = "primary"
MAX_AUTO_SELECTED_OTHERS = 3
DAYS_PER_WEEK = 7
MIN_EVENT_DURATION = timedelta(minutes=30)

LOAD_ERROR = "Failed to load events"
CALENDARS_ERROR = "Failed to load calendars"
CREATE_ERROR = "Failed to create event"


class AuthState(StrEnum):
    UNKNOWN = "unknown"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def parse_google_datetime(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    return datetime.fromisoformat(normalized)


def week_start_for(day: date) -> date:
    """Sunday on or before *day*."""
    return day - timedelta(days=(day.weekday() + 1) % DAYS_PER_WEEK)


def _boundary(event: dict[str, Any], key: str) -> dict[str, Any]:
    value = event.get(key)
    return value if isinstance(value, dict) else {}


def event_start(event: dict[str, Any], tz: tzinfo) -> datetime | None:
    """Resolved start instant of *event* in *tz*.

    ``start.dateTime`` takes precedence over ``start.date``; an all-day date
    resolves to local midnight.  Unparsable boundaries resolve to ``None``.
    """
    start = _boundary(event, "start")
    try:
        if isinstance(start.get("dateTime"), str):
            parsed = parse_google_datetime(start["dateTime"])
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=tz)
            return parsed.astimezone(tz)
        if isinstance(start.get("date"), str):
            return datetime.combine(date.fromisoformat(start["date"]), time.min, tzinfo=tz)
    except ValueError:
        logger.debug("Unparsable start on event %s", event.get("id"))
    return None


def merge_events(per_calendar: Iterable[list[dict[str, Any]]], tz: tzinfo) -> list[dict[str, Any]]:
    """Merge per-calendar event lists into one timeline sorted by start.

    Events without a usable start sort last; ties keep input order.
    """
    merged = [event for events in per_calendar for event in events]

    def sort_key(event: dict[str, Any]) -> tuple[bool, datetime]:
        start = event_start(event, tz)
        if start is None:
            return (True, datetime.min.replace(tzinfo=tz))
        return (False, start)

    return sorted(merged, key=sort_key)


# ---------------------------------------------------------------------------
# Event creation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventDraft:
    """Inline event-creation form."""

    summary: str
    start: datetime
    end: datetime
    description: str | None = None
    location: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Google-shaped event body."""
        payload: dict[str, Any] = {
            "summary": self.summary,
            "start": {"dateTime": self.start.isoformat()},
            "end": {"dateTime": self.end.isoformat()},
        }
        if self.description:
            payload["description"] = self.description
        if self.location:
            payload["location"] = self.location
        return payload


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimedBlock:
    """A timed event placed on a day column.

    ``top`` and ``height`` are in hours from local midnight; ``height`` is at
    least ``MIN_EVENT_DURATION`` and never runs past the end of the day.
    """

    event: dict[str, Any]
    start: datetime
    end: datetime
    top: float
    height: float


@dataclass
class DayColumn:
    day: date
    all_day: list[dict[str, Any]] = field(default_factory=list)
    timed: list[TimedBlock] = field(default_factory=list)


@dataclass(frozen=True)
class NowMarker:
    day_index: int
    hour: float


@dataclass
class WeekLayout:
    days: list[DayColumn]
    now: NowMarker | None = None


def _hours_since_midnight(value: datetime) -> float:
    return value.hour + value.minute / 60 + value.second / 3600


def _place_all_day(columns: list[DayColumn], event: dict[str, Any]) -> None:
    start_raw = _boundary(event, "start").get("date")
    end_raw = _boundary(event, "end").get("date")
    try:
        start_day = date.fromisoformat(start_raw)
        end_day = date.fromisoformat(end_raw) if isinstance(end_raw, str) else None
    except (TypeError, ValueError):
        return
    # Google all-day end dates are exclusive.
    if end_day is None or end_day <= start_day:
        end_day = start_day + timedelta(days=1)
    for column in columns:
        if start_day <= column.day < end_day:
            column.all_day.append(event)


def _place_timed(
    columns: list[DayColumn],
    event: dict[str, Any],
    first_day: date,
    tz: tzinfo,
) -> None:
    start = event_start(event, tz)
    if start is None:
        return
    index = (start.date() - first_day).days
    if not 0 <= index < len(columns):
        return

    end: datetime | None = None
    end_raw = _boundary(event, "end").get("dateTime")
    if isinstance(end_raw, str):
        try:
            end = parse_google_datetime(end_raw)
            end = (end if end.tzinfo is not None else end.replace(tzinfo=tz)).astimezone(tz)
        except ValueError:
            end = None
    if end is None or end < start:
        end = start

    top = _hours_since_midnight(start)
    duration = max(end - start, MIN_EVENT_DURATION)
    height = min(duration.total_seconds() / 3600, 24 - top)
    columns[index].timed.append(
        TimedBlock(event=event, start=start, end=end, top=top, height=height)
    )


def layout_week(
    events: list[dict[str, Any]],
    first_day: date,
    tz: tzinfo,
    now: datetime | None = None,
) -> WeekLayout:
    """Place *events* on the seven day columns starting at *first_day*.

    All-day events go in each covered day's ``all_day`` row; timed events are
    positioned by hour of day.  ``now`` adds a current-time marker when it
    falls inside the week.
    """
    columns = [DayColumn(day=first_day + timedelta(days=i)) for i in range(DAYS_PER_WEEK)]
    for event in events:
        if isinstance(_boundary(event, "start").get("dateTime"), str):
            _place_timed(columns, event, first_day, tz)
        else:
            _place_all_day(columns, event)

    marker = None
    if now is not None:
        local_now = now.astimezone(tz)
        index = (local_now.date() - first_day).days
        if 0 <= index < DAYS_PER_WEEK:
            marker = NowMarker(day_index=index, hour=_hours_since_midnight(local_now))
    return WeekLayout(days=columns, now=marker)


# ---------------------------------------------------------------------------
# CalendarView
# ---------------------------------------------------------------------------


def select_default_calendars(calendars: list[dict[str, Any]]) -> list[str]:
    """Primary calendar plus up to three others, in list order."""
    primary = [c["id"] for c in calendars if c.get("primary") and isinstance(c.get("id"), str)]
    others = [
        c["id"] for c in calendars if not c.get("primary") and isinstance(c.get("id"), str)
    ]
    selected = primary[:1] + others[:MAX_AUTO_SELECTED_OTHERS]
    return selected or [PRIMARY_CALENDAR_ID]


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    """Return the response body as a JSON object, or None if it is anything else."""
    try:
        payload = response.json()
    except ValueError:
        logger.warning("Unparsable response from %s", response.request.url.path)
        return None
    if not isinstance(payload, dict):
        logger.warning(
            "Unexpected %s payload from %s", type(payload).__name__, response.request.url.path
        )
        return None
    return payload


class CalendarView:
    """Week view over the dashboard's calendar endpoints."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._http_client = http_client
        self.tz: tzinfo = tz or datetime.now().astimezone().tzinfo  # type: ignore[assignment]
        self._clock = clock or (lambda: datetime.now(self.tz))
        self.state = AuthState.UNKNOWN
        self.calendars: list[dict[str, Any]] = []
        self.selected_ids: list[str] = []
        self.events: list[dict[str, Any]] = []
        self.week_start = week_start_for(self.now().date())
        self.loading = False
        self.error: str | None = None

    # -- derived state -----------------------------------------------------

    @property
    def connect_url(self) -> str:
        """Where the "connect" action navigates while unauthenticated."""
        return AUTH_ENDPOINT

    @property
    def week_end(self) -> date:
        """Exclusive end of the displayed week."""
        return self.week_start + timedelta(days=DAYS_PER_WEEK)

    @property
    def date_range(self) -> tuple[date, date]:
        return self.week_start, self.week_end

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def layout(self) -> WeekLayout:
        return layout_week(self.events, self.week_start, self.tz, self.now())

    def _window_params(self) -> dict[str, str]:
        return {
            "timeMin": datetime.combine(self.week_start, time.min, tzinfo=self.tz).isoformat(),
            "timeMax": datetime.combine(self.week_end, time.min, tzinfo=self.tz).isoformat(),
        }

    # -- loading -----------------------------------------------------------

    async def load(self) -> None:
        """Probe the events endpoint once, then load calendars and events."""
        self.loading = True
        self.error = None
        try:
            response = await self._http_client.get(EVENTS_ENDPOINT, params=self._window_params())
        except httpx.HTTPError as exc:
            logger.warning("Calendar probe failed: %s", exc)
            self.error = LOAD_ERROR
            self.loading = False
            return

        if response.status_code == 401:
            self.state = AuthState.UNAUTHENTICATED
            self.events = []
            self.loading = False
            return

        self.state = AuthState.AUTHENTICATED
        try:
            await self.load_calendars()
            await self.refresh_events()
        finally:
            self.loading = False

    async def load_calendars(self) -> None:
        """Fetch the calendar list and apply the default selection."""
        try:
            response = await self._http_client.get(CALENDARS_ENDPOINT)
        except httpx.HTTPError as exc:
            logger.warning("Calendar list request failed: %s", exc)
            self._calendars_failed()
            return
        if response.status_code == 401:
            self.state = AuthState.UNAUTHENTICATED
            return
        payload = _json_object(response) if response.is_success else None
        if payload is None:
            self._calendars_failed()
            return

        items = payload.get("items") or []
        self.calendars = [c for c in items if isinstance(c, dict)]
        self.selected_ids = select_default_calendars(self.calendars)

    def _calendars_failed(self) -> None:
        # Without a calendar list the primary calendar is still shown.
        self.error = CALENDARS_ERROR
        self.selected_ids = self.selected_ids or [PRIMARY_CALENDAR_ID]

    async def refresh_events(self) -> None:
        """Refetch the selected calendars' events for the displayed week."""
        if self.state is not AuthState.AUTHENTICATED:
            return
        if not self.selected_ids:
            self.events = []
            return

        window = self._window_params()
        try:
            responses = await asyncio.gather(
                *(
                    self._http_client.get(
                        EVENTS_ENDPOINT,
                        params={**window, "calendarId": calendar_id},
                    )
                    for calendar_id in self.selected_ids
                )
            )
        except httpx.HTTPError as exc:
            logger.warning("Event list request failed: %s", exc)
            self.error = LOAD_ERROR
            return

        if any(r.status_code == 401 for r in responses):
            self.state = AuthState.UNAUTHENTICATED
            return
        payloads = [_json_object(r) if r.is_success else None for r in responses]
        if any(p is None for p in payloads):
            self.error = LOAD_ERROR
            return

        # Errors from the calendar list or event creation stay visible.
        if self.error == LOAD_ERROR:
            self.error = None
        self.events = merge_events(
            ([e for e in (p.get("items") or []) if isinstance(e, dict)] for p in payloads if p),
            self.tz,
        )

    # -- navigation and selection -------------------------------------------

    async def next_week(self) -> None:
        self.week_start += timedelta(days=DAYS_PER_WEEK)
        await self.refresh_events()

    async def previous_week(self) -> None:
        self.week_start -= timedelta(days=DAYS_PER_WEEK)
        await self.refresh_events()

    async def jump_to_today(self) -> None:
        self.week_start = week_start_for(self.now().date())
        await self.refresh_events()

    async def toggle_calendar(self, calendar_id: str) -> None:
        if calendar_id in self.selected_ids:
            self.selected_ids = [c for c in self.selected_ids if c != calendar_id]
        else:
            self.selected_ids = [*self.selected_ids, calendar_id]
        await self.refresh_events()

    # -- event creation ------------------------------------------------------

    async def create_event(
        self,
        draft: EventDraft,
        *,
        calendar_id: str = PRIMARY_CALENDAR_ID,
    ) -> dict[str, Any] | None:
        """POST *draft* and refresh the timeline once on success."""
        params = {} if calendar_id == PRIMARY_CALENDAR_ID else {"calendarId": calendar_id}
        try:
            response = await self._http_client.post(
                EVENTS_ENDPOINT,
                json=draft.to_payload(),
                params=params,
            )
        except httpx.HTTPError as exc:
            logger.warning("Create event request failed: %s", exc)
            self.error = CREATE_ERROR
            return None

        if response.status_code == 401:
            self.state = AuthState.UNAUTHENTICATED
            return None
        created = _json_object(response) if response.is_success else None
        if created is None:
            self.error = CREATE_ERROR
            return None

        if self.error == CREATE_ERROR:
            self.error = None
        await self.refresh_events()
        return created
