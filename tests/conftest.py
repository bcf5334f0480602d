"""Shared test fixtures for the dashboard test suite.

HTTP-level tests drive the FastAPI app through ``httpx.ASGITransport``.  The
app's outbound HTTP client is replaced with one backed by
``httpx.MockTransport`` so every vendor request is recorded and answered
in-process; configuration is injected through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from fastapi import FastAPI

from signal_dashboard.api.app import create_app
from signal_dashboard.api.deps import get_config, get_http_client
from signal_dashboard.config import DashboardConfig, GoogleConfig, PerplexityConfig
from signal_dashboard.tokens import TOKEN_COOKIE_NAME, TokenSet

VendorHandler = Callable[[httpx.Request], httpx.Response]

TEST_BASE_URL = "http://dashboard.test"
TEST_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
TEST_CLIENT_SECRET = "test-client-secret"
TEST_API_KEY = "pplx-test-key"


def token_cookie_header(tokens: TokenSet | dict | str) -> dict[str, str]:
    """``Cookie`` header carrying *tokens* as the token cookie."""
    if isinstance(tokens, dict):
        tokens = TokenSet.model_validate(tokens)
    value = tokens if isinstance(tokens, str) else tokens.to_cookie_value()
    return {"Cookie": f"{TOKEN_COOKIE_NAME}={value}"}


class VendorStub:
    """Records outbound requests and answers them with *handler*."""

    def __init__(self, handler: VendorHandler) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]


@pytest.fixture
def config() -> DashboardConfig:
    return DashboardConfig(
        base_url=TEST_BASE_URL,
        google=GoogleConfig(client_id=TEST_CLIENT_ID, client_secret=TEST_CLIENT_SECRET),
        perplexity=PerplexityConfig(api_key=TEST_API_KEY),
    )


@pytest.fixture
def build_app(config: DashboardConfig) -> Callable[..., tuple[FastAPI, VendorStub]]:
    """Factory returning ``(app, vendor)`` with *handler* answering vendor calls."""

    def _build(
        handler: VendorHandler | None = None,
        app_config: DashboardConfig | None = None,
    ) -> tuple[FastAPI, VendorStub]:
        vendor = VendorStub(handler or (lambda request: httpx.Response(500)))
        vendor_client = httpx.AsyncClient(transport=httpx.MockTransport(vendor))
        resolved = app_config or config

        app = create_app(resolved)
        app.dependency_overrides[get_config] = lambda: resolved
        app.dependency_overrides[get_http_client] = lambda: vendor_client
        return app, vendor

    return _build


def api_client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
