"""Tests for the calendar week view: auth probe, selection, merge and layout."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta, timezone

import httpx
import pytest

from signal_dashboard.client.calendar_view import (
    AUTH_ENDPOINT,
    CALENDARS_ENDPOINT,
    CALENDARS_ERROR,
    CREATE_ERROR,
    EVENTS_ENDPOINT,
    LOAD_ERROR,
    AuthState,
    CalendarView,
    EventDraft,
    event_start,
    layout_week,
    merge_events,
    select_default_calendars,
    week_start_for,
)

pytestmark = pytest.mark.unit

NOW = datetime(2024, 5, 15, 10, 30, tzinfo=UTC)  # Wednesday
WEEK_START = date(2024, 5, 12)  # Sunday

CALENDARS = [
    {"id": "team@example.com", "summary": "Team"},
    {"id": "me@example.com", "summary": "Me", "primary": True},
    {"id": "holidays@example.com"},
    {"id": "gym@example.com"},
    {"id": "book-club@example.com"},
]

EVENTS_BY_CALENDAR = {
    "me@example.com": [
        {"id": "lunch", "start": {"dateTime": "2024-05-15T12:00:00Z"}},
        {"id": "standup", "start": {"dateTime": "2024-05-13T09:00:00Z"}},
    ],
    "team@example.com": [
        {"id": "retro", "start": {"dateTime": "2024-05-14T15:00:00+02:00"}},
        {"id": "offsite", "start": {"date": "2024-05-14"}, "end": {"date": "2024-05-16"}},
    ],
}


class FakeDashboard:
    """In-process stand-in for the dashboard API.

    ``calendars_reply``, ``events_reply`` and ``create_reply`` replace the
    default answer of one endpoint when set.
    """

    def __init__(self, *, authenticated: bool = True, fail_events: bool = False) -> None:
        self.authenticated = authenticated
        self.fail_events = fail_events
        self.fail_create = False
        self.events_by_calendar = EVENTS_BY_CALENDAR
        self.calendars_reply: Callable[[], httpx.Response] | None = None
        self.events_reply: Callable[[], httpx.Response] | None = None
        self.create_reply: Callable[[], httpx.Response] | None = None
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.authenticated:
            return httpx.Response(401, json={"error": {"code": "NOT_AUTHENTICATED"}})

        if request.url.path == CALENDARS_ENDPOINT:
            if self.calendars_reply is not None:
                return self.calendars_reply()
            return httpx.Response(200, json={"items": CALENDARS})
        if request.method == "POST":
            if self.create_reply is not None:
                return self.create_reply()
            if self.fail_create:
                return httpx.Response(500, json={"error": {"code": "UPSTREAM_FAILURE"}})
            return httpx.Response(200, json={"id": "new", **json.loads(request.content)})
        if "calendarId" in request.url.params:
            if self.events_reply is not None:
                return self.events_reply()
            if self.fail_events:
                return httpx.Response(500, json={"error": {"code": "UPSTREAM_FAILURE"}})
        calendar_id = request.url.params.get("calendarId", "primary")
        return httpx.Response(200, json={"items": self.events_by_calendar.get(calendar_id, [])})

    def event_fetches(self) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == "GET"
            and r.url.path == EVENTS_ENDPOINT
            and "calendarId" in r.url.params
        ]


def _view(backend: FakeDashboard) -> CalendarView:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(backend), base_url="http://dashboard.test"
    )
    return CalendarView(client, tz=UTC, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("day", "expected"),
        [
            (date(2024, 5, 12), date(2024, 5, 12)),
            (date(2024, 5, 15), date(2024, 5, 12)),
            (date(2024, 5, 18), date(2024, 5, 12)),
            (date(2024, 5, 19), date(2024, 5, 19)),
        ],
    )
    def test_week_starts_on_sunday(self, day, expected):
        assert week_start_for(day) == expected

    def test_event_start_prefers_date_time(self):
        event = {"start": {"dateTime": "2024-05-14T15:00:00+02:00", "date": "2024-05-01"}}
        assert event_start(event, UTC) == datetime(2024, 5, 14, 13, tzinfo=UTC)

    def test_all_day_start_is_local_midnight(self):
        tz = timezone(timedelta(hours=-4))
        assert event_start({"start": {"date": "2024-05-14"}}, tz) == datetime(
            2024, 5, 14, tzinfo=tz
        )

    def test_merge_sorted_by_start(self):
        merged = merge_events(EVENTS_BY_CALENDAR.values(), UTC)
        assert [e["id"] for e in merged] == ["standup", "offsite", "retro", "lunch"]

    def test_merge_puts_unparsable_last(self):
        merged = merge_events(
            [[{"id": "bad", "start": {}}], [{"id": "ok", "start": {"date": "2024-05-13"}}]],
            UTC,
        )
        assert [e["id"] for e in merged] == ["ok", "bad"]

    def test_default_selection(self):
        assert select_default_calendars(CALENDARS) == [
            "me@example.com",
            "team@example.com",
            "holidays@example.com",
            "gym@example.com",
        ]

    def test_default_selection_without_calendars(self):
        assert select_default_calendars([]) == ["primary"]

    def test_draft_payload(self):
        draft = EventDraft(
            summary="Focus",
            start=datetime(2024, 5, 16, 9, tzinfo=UTC),
            end=datetime(2024, 5, 16, 11, tzinfo=UTC),
            location="Library",
        )
        assert draft.to_payload() == {
            "summary": "Focus",
            "start": {"dateTime": "2024-05-16T09:00:00+00:00"},
            "end": {"dateTime": "2024-05-16T11:00:00+00:00"},
            "location": "Library",
        }


class TestLayout:
    def test_all_day_and_timed_placement(self):
        events = [
            {"id": "offsite", "start": {"date": "2024-05-14"}, "end": {"date": "2024-05-16"}},
            {
                "id": "standup",
                "start": {"dateTime": "2024-05-13T09:00:00Z"},
                "end": {"dateTime": "2024-05-13T09:10:00Z"},
            },
            {
                "id": "workshop",
                "start": {"dateTime": "2024-05-13T13:30:00Z"},
                "end": {"dateTime": "2024-05-13T16:00:00Z"},
            },
        ]
        layout = layout_week(events, WEEK_START, UTC)

        assert [d.day for d in layout.days] == [WEEK_START + timedelta(days=i) for i in range(7)]
        assert [[e["id"] for e in d.all_day] for d in layout.days] == [
            [],
            [],
            ["offsite"],
            ["offsite"],
            [],
            [],
            [],
        ]
        monday = layout.days[1]
        assert [(b.event["id"], b.top, b.height) for b in monday.timed] == [
            ("standup", 9.0, 0.5),
            ("workshop", 13.5, 2.5),
        ]
        assert layout.now is None

    def test_events_outside_week_dropped(self):
        layout = layout_week(
            [{"id": "x", "start": {"dateTime": "2024-05-20T09:00:00Z"}}], WEEK_START, UTC
        )
        assert all(not d.timed for d in layout.days)

    def test_block_clipped_at_midnight(self):
        layout = layout_week(
            [
                {
                    "id": "late",
                    "start": {"dateTime": "2024-05-13T23:00:00Z"},
                    "end": {"dateTime": "2024-05-14T02:00:00Z"},
                }
            ],
            WEEK_START,
            UTC,
        )
        assert layout.days[1].timed[0].height == 1.0

    def test_now_marker(self):
        layout = layout_week([], WEEK_START, UTC, NOW)
        assert layout.now is not None
        assert layout.now.day_index == 3
        assert layout.now.hour == 10.5

    def test_no_now_marker_for_other_weeks(self):
        assert layout_week([], WEEK_START + timedelta(days=7), UTC, NOW).now is None


# ---------------------------------------------------------------------------
# CalendarView
# ---------------------------------------------------------------------------


class TestAuthProbe:
    async def test_unauthenticated(self):
        backend = FakeDashboard(authenticated=False)
        view = _view(backend)
        assert view.state is AuthState.UNKNOWN

        await view.load()

        assert view.state is AuthState.UNAUTHENTICATED
        assert view.connect_url == AUTH_ENDPOINT
        assert view.events == []
        assert len(backend.requests) == 1
        assert view.loading is False

    async def test_authenticated_loads_calendars_and_events(self):
        backend = FakeDashboard()
        view = _view(backend)

        await view.load()

        assert view.state is AuthState.AUTHENTICATED
        assert view.week_start == WEEK_START
        assert view.selected_ids == [
            "me@example.com",
            "team@example.com",
            "holidays@example.com",
            "gym@example.com",
        ]
        assert [e["id"] for e in view.events] == ["standup", "offsite", "retro", "lunch"]
        assert view.error is None

        fetch = backend.event_fetches()[0]
        assert fetch.url.params["timeMin"] == "2024-05-12T00:00:00+00:00"
        assert fetch.url.params["timeMax"] == "2024-05-19T00:00:00+00:00"


class TestNavigation:
    async def test_next_then_previous_round_trip(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()

        await view.next_week()
        assert view.week_start == WEEK_START + timedelta(days=7)
        assert backend.event_fetches()[-1].url.params["timeMin"] == "2024-05-19T00:00:00+00:00"

        await view.previous_week()
        assert view.week_start == WEEK_START
        assert view.date_range == (WEEK_START, WEEK_START + timedelta(days=7))

    async def test_jump_to_today(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        await view.previous_week()
        await view.previous_week()

        await view.jump_to_today()
        assert view.week_start == WEEK_START

    async def test_toggle_calendar_refetches(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()

        await view.toggle_calendar("team@example.com")
        assert "team@example.com" not in view.selected_ids
        assert [e["id"] for e in view.events] == ["standup", "lunch"]

        await view.toggle_calendar("team@example.com")
        assert view.selected_ids[-1] == "team@example.com"
        assert len(view.events) == 4

    async def test_fetch_failure_keeps_events(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        loaded = list(view.events)

        backend.fail_events = True
        await view.next_week()

        assert view.error == LOAD_ERROR
        assert view.events == loaded


class TestCreateEvent:
    _DRAFT = EventDraft(
        summary="Focus block",
        start=datetime(2024, 5, 16, 9, tzinfo=UTC),
        end=datetime(2024, 5, 16, 11, tzinfo=UTC),
        description="No meetings",
    )

    async def test_posts_payload_and_refetches_once(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        view.selected_ids = ["me@example.com"]
        before = len(backend.requests)

        created = await view.create_event(self._DRAFT)

        assert created["id"] == "new"
        post, *refetches = backend.requests[before:]
        assert post.method == "POST"
        assert post.url.path == EVENTS_ENDPOINT
        assert json.loads(post.content) == {
            "summary": "Focus block",
            "start": {"dateTime": "2024-05-16T09:00:00+00:00"},
            "end": {"dateTime": "2024-05-16T11:00:00+00:00"},
            "description": "No meetings",
        }
        assert len(refetches) == 1
        assert refetches[0].method == "GET"

    async def test_failure_sets_error_without_refetch(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        backend.fail_create = True
        before = len(backend.requests)

        assert await view.create_event(self._DRAFT) is None
        assert view.error == CREATE_ERROR
        assert len(backend.requests) == before + 1

    async def test_success_clears_earlier_create_error(self):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        backend.fail_create = True
        await view.create_event(self._DRAFT)

        backend.fail_create = False
        assert await view.create_event(self._DRAFT) is not None
        assert view.error is None


def _html_page() -> httpx.Response:
    return httpx.Response(200, text="<html>proxy error</html>")


def _json_list() -> httpx.Response:
    return httpx.Response(200, json=[1, 2])


class TestUnreadableResponses:
    @pytest.mark.parametrize("reply", [_html_page, _json_list])
    async def test_calendar_list(self, reply):
        backend = FakeDashboard()
        backend.calendars_reply = reply
        view = _view(backend)

        await view.load()

        assert view.state is AuthState.AUTHENTICATED
        assert view.error == CALENDARS_ERROR
        assert view.calendars == []
        assert view.loading is False

    @pytest.mark.parametrize("reply", [_html_page, _json_list])
    async def test_event_list_on_load(self, reply):
        backend = FakeDashboard()
        backend.events_reply = reply
        view = _view(backend)

        await view.load()

        assert view.error == LOAD_ERROR
        assert view.events == []
        assert view.loading is False

    @pytest.mark.parametrize("reply", [_html_page, _json_list])
    async def test_event_list_keeps_loaded_events(self, reply):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        loaded = list(view.events)

        backend.events_reply = reply
        await view.next_week()

        assert view.error == LOAD_ERROR
        assert view.events == loaded

    @pytest.mark.parametrize("reply", [_html_page, _json_list])
    async def test_created_event(self, reply):
        backend = FakeDashboard()
        view = _view(backend)
        await view.load()
        backend.create_reply = reply
        before = len(backend.requests)

        draft = EventDraft(
            summary="Focus",
            start=datetime(2024, 5, 16, 9, tzinfo=UTC),
            end=datetime(2024, 5, 16, 10, tzinfo=UTC),
        )
        assert await view.create_event(draft) is None
        assert view.error == CREATE_ERROR
        assert len(backend.requests) == before + 1


class TestCalendarListFailure:
    async def test_primary_calendar_still_shown(self):
        backend = FakeDashboard()
        backend.calendars_reply = lambda: httpx.Response(
            500, json={"error": {"code": "UPSTREAM_FAILURE"}}
        )
        backend.events_by_calendar = {
            "primary": [{"id": "dentist", "start": {"dateTime": "2024-05-16T08:00:00Z"}}]
        }
        view = _view(backend)

        await view.load()

        assert view.selected_ids == ["primary"]
        assert [r.url.params["calendarId"] for r in backend.event_fetches()] == ["primary"]
        assert [e["id"] for e in view.events] == ["dentist"]
        assert view.error == CALENDARS_ERROR

    async def test_error_survives_later_event_fetches(self):
        backend = FakeDashboard()
        backend.calendars_reply = _html_page
        view = _view(backend)
        await view.load()

        await view.next_week()

        assert view.error == CALENDARS_ERROR

    async def test_successful_fetch_clears_load_error(self):
        backend = FakeDashboard(fail_events=True)
        view = _view(backend)
        await view.load()
        assert view.error == LOAD_ERROR

        backend.fail_events = False
        await view.next_week()

        assert view.error is None
        assert view.events
