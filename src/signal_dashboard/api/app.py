"""Dashboard API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Request-id and error-envelope middleware
- Lifespan handler for the shared outbound HTTP client
- Health endpoint at GET /api/health
- Google OAuth, Google Calendar, Perplexity and navigation routers
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signal_dashboard import __version__
from signal_dashboard.api.deps import init_dependencies, shutdown_dependencies
from signal_dashboard.api.middleware import register_error_handlers
from signal_dashboard.api.models import HealthResponse
from signal_dashboard.api.routers.calendar import router as calendar_router
from signal_dashboard.api.routers.google_oauth import router as google_oauth_router
from signal_dashboard.api.routers.navigation import router as navigation_router
from signal_dashboard.api.routers.perplexity import router as perplexity_router
from signal_dashboard.config import DashboardConfig


def create_app(config: DashboardConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Dashboard configuration.  When ``None`` it is loaded from the
        environment on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_dependencies(config)
        yield
        await shutdown_dependencies()

    app = FastAPI(
        title="Signal Dashboard API",
        version=__version__,
        lifespan=lifespan,
    )
    app.router.redirect_slashes = False

    cors_origins = config.server.cors_origins if config is not None else None
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(google_oauth_router)
    app.include_router(calendar_router)
    app.include_router(perplexity_router)
    app.include_router(navigation_router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    return app
