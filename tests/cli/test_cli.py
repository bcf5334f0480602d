"""Tests for the CLI commands."""

from __future__ import annotations

import json
import logging

import httpx
import pytest
from click.testing import CliRunner

import signal_dashboard.cli as cli_module
from signal_dashboard.cli import TOKENS_ENV_VAR, cli

pytestmark = pytest.mark.unit


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch):
    for name in ("DASHBOARD_LOG_FORMAT", "DASHBOARD_LOG_LEVEL", TOKENS_ENV_VAR):
        monkeypatch.delenv(name, raising=False)
    yield
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


@pytest.fixture
def dashboard(monkeypatch):
    """Route the CLI's dashboard client through *handler*."""
    real_client = httpx.AsyncClient
    seen: list[httpx.Request] = []

    def install(handler):
        def recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        def factory(*args, **kwargs):
            return real_client(*args, transport=httpx.MockTransport(recording), **kwargs)

        monkeypatch.setattr(cli_module.httpx, "AsyncClient", factory)
        return seen

    return install


def _sse(*contents: str) -> bytes:
    frames = [
        f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}\n\n" for c in contents
    ]
    return "".join(frames).encode()


class TestNav:
    def test_lists_sections(self, runner):
        result = runner.invoke(cli, ["nav"], color=False)
        assert result.exit_code == 0
        assert "Calendar" in result.output
        assert "/question" in result.output
        assert result.output.count("(coming soon)") == 6


class TestConfigErrors:
    def test_invalid_config_exits(self, runner, tmp_path):
        config_file = tmp_path / "dashboard.toml"
        config_file.write_text("[server]\nport = 0\n")
        result = runner.invoke(cli, ["--config", str(config_file), "nav"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestAsk:
    def test_streams_answer(self, runner, dashboard):
        seen = dashboard(lambda request: httpx.Response(200, content=_sse("Forty", "-two")))
        result = runner.invoke(cli, ["ask", "Meaning of life?", "--model", "sonar"], color=False)

        assert result.exit_code == 0
        assert "Forty-two" in result.output
        body = json.loads(seen[0].content)
        assert body["model"] == "sonar"
        assert body["messages"][-1] == {"role": "user", "content": "Meaning of life?"}

    def test_failure(self, runner, dashboard):
        dashboard(lambda request: httpx.Response(500))
        result = runner.invoke(cli, ["ask", "q"])
        assert result.exit_code == 1
        assert "Failed to get answer" in result.output


class TestWeek:
    def test_not_connected(self, runner, dashboard):
        dashboard(lambda request: httpx.Response(401))
        result = runner.invoke(cli, ["week"])
        assert result.exit_code == 1
        assert "/api/google/auth" in result.output

    def test_renders_week_with_token_cookie(self, runner, dashboard, monkeypatch):
        monkeypatch.setenv(TOKENS_ENV_VAR, '{"access_token":"at"}')

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/google/calendars":
                return httpx.Response(200, json={"items": [{"id": "me", "primary": True}]})
            return httpx.Response(200, json={"items": []})

        seen = dashboard(handler)
        result = runner.invoke(cli, ["week"], color=False)

        assert result.exit_code == 0
        assert result.output.startswith("Week of ")
        assert seen[0].headers["cookie"] == 'google_tokens={"access_token":"at"}'

    def test_calendar_list_failure_still_renders_primary(self, runner, dashboard):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/google/calendars":
                return httpx.Response(500, json={"error": {"code": "UPSTREAM_FAILURE"}})
            return httpx.Response(200, json={"items": []})

        seen = dashboard(handler)
        result = runner.invoke(cli, ["week"], color=False)

        assert result.exit_code == 1
        assert "Week of " in result.output
        assert "Failed to load calendars" in result.output
        assert seen[-1].url.params["calendarId"] == "primary"
