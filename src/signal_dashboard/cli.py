"""CLI for the Signal dashboard: serve the API and drive its views from a terminal."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import click
import httpx

from signal_dashboard import __version__
from signal_dashboard.client.calendar_view import AuthState, CalendarView
from signal_dashboard.client.chat_view import ChatMessage, ChatView
from signal_dashboard.client.render import render_message, render_navigation, render_week
from signal_dashboard.client.stream import ChatDelta
from signal_dashboard.config import ConfigError, DashboardConfig, load_config
from signal_dashboard.core.logging import configure_logging
from signal_dashboard.navigation import NAVIGATION
from signal_dashboard.tokens import TOKEN_COOKIE_NAME

DEFAULT_DASHBOARD_URL = "http://127.0.0.1:3000"
TOKENS_ENV_VAR = "SIGNAL_DASHBOARD_TOKENS"


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to dashboard.toml or a directory containing it",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Signal: personal dashboard with a calendar week view and a research chat."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)
    configure_logging(config.logging.level, config.logging.format, config.logging.log_file)
    ctx.obj = config


@cli.command()
@click.option("--host", default=None, help="Bind address (default: server.host)")
@click.option("--port", type=int, default=None, help="Bind port (default: server.port)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
@click.pass_obj
def serve(config: DashboardConfig, host: str | None, port: int | None, reload: bool) -> None:
    """Serve the dashboard API with uvicorn."""
    import uvicorn

    from signal_dashboard.api.app import create_app

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    click.echo(f"Serving dashboard API on http://{bind_host}:{bind_port}")
    if reload:
        # Reload needs an import string; the worker reloads config from the environment.
        uvicorn.run(
            "signal_dashboard.api.app:create_app",
            factory=True,
            host=bind_host,
            port=bind_port,
            reload=True,
            log_config=None,
        )
    else:
        uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_config=None)


@cli.command()
@click.argument("question")
@click.option("--url", default=DEFAULT_DASHBOARD_URL, show_default=True, help="Dashboard URL")
@click.option("--model", default=None, help="Chat model override")
def ask(question: str, url: str, model: str | None) -> None:
    """Ask QUESTION and stream the answer."""
    sys.exit(asyncio.run(_ask(question, url, model)))


async def _ask(question: str, url: str, model: str | None) -> int:
    def _echo_delta(message: ChatMessage, delta: ChatDelta) -> None:
        if delta.content:
            click.echo(delta.content, nl=False)

    async with httpx.AsyncClient(base_url=url, timeout=None) as http_client:
        view = ChatView(http_client, model=model, on_delta=_echo_delta)
        answer = await view.send(question)

    if answer is None:
        click.echo(view.error or "No answer", err=True)
        return 1
    click.echo()
    for line in render_message(answer)[1:]:
        click.echo(line)
    return 0


@cli.command()
@click.option("--url", default=DEFAULT_DASHBOARD_URL, show_default=True, help="Dashboard URL")
@click.option("--offset", type=int, default=0, help="Weeks relative to the current week")
@click.option(
    "--tokens",
    default=None,
    help=f"google_tokens cookie value (default: ${TOKENS_ENV_VAR})",
)
def week(url: str, offset: int, tokens: str | None) -> None:
    """Show a week of events from the selected calendars."""
    tokens = tokens or os.environ.get(TOKENS_ENV_VAR)
    sys.exit(asyncio.run(_week(url, offset, tokens)))


async def _week(url: str, offset: int, tokens: str | None) -> int:
    headers = {"Cookie": f"{TOKEN_COOKIE_NAME}={tokens}"} if tokens else {}
    async with httpx.AsyncClient(base_url=url, headers=headers, timeout=None) as http_client:
        view = CalendarView(http_client)
        await view.load()
        if view.state is AuthState.UNAUTHENTICATED:
            click.echo(f"Not connected. Open {url}{view.connect_url} to connect Google Calendar.")
            return 1
        for _ in range(abs(offset)):
            await (view.next_week() if offset > 0 else view.previous_week())

    for line in render_week(view.layout()):
        click.echo(line)
    if view.error:
        click.echo(view.error, err=True)
        return 1
    return 0


@cli.command()
def nav() -> None:
    """List the dashboard sections."""
    for line in render_navigation(NAVIGATION):
        click.echo(line)
