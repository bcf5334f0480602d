"""Configuration and HTTP client dependencies for the dashboard API.

Provides:
- ``init_dependencies()`` / ``shutdown_dependencies()``: lifespan hooks that
  create and close the process-wide singletons.
- ``get_config()``: FastAPI dependency yielding the ``DashboardConfig``.
- ``get_http_client()``: FastAPI dependency yielding the shared outbound
  ``httpx.AsyncClient``.

Tests replace either dependency through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging

import httpx

from signal_dashboard.config import DashboardConfig, load_config

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

_config: DashboardConfig | None = None
_http_client: httpx.AsyncClient | None = None


def init_dependencies(config: DashboardConfig | None = None) -> None:
    """Initialize module-level singletons. Called from the app lifespan.

    When *config* is ``None`` it is loaded from the environment.
    """
    global _config, _http_client  # noqa: PLW0603
    _config = config if config is not None else load_config()
    if _http_client is None:
        # No timeout: a hung vendor call hangs the corresponding request.
        _http_client = httpx.AsyncClient(timeout=None)
    logger.info("Dashboard dependencies initialized (environment=%s)", _config.environment)


async def shutdown_dependencies() -> None:
    """Close the shared HTTP client. Called on app shutdown."""
    global _http_client  # noqa: PLW0603
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def get_config() -> DashboardConfig:
    """FastAPI dependency: provides the DashboardConfig singleton.

    Falls back to loading from the environment when the lifespan has not run
    (e.g. when the app is driven by an ASGI test transport).
    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = load_config()
    return _config


def get_http_client() -> httpx.AsyncClient:
    """FastAPI dependency: provides the shared outbound HTTP client."""
    if _http_client is None:
        raise RuntimeError("HTTP client not initialized; call init_dependencies() first")
    return _http_client
