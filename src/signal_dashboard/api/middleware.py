"""API error handling and request-context middleware.

Registers FastAPI exception handlers that convert domain exceptions into
standardised ``{"error": {"code": "...", "message": "...", "details": ...}}``
JSON responses.

Status code mapping:
- ``DashboardError`` subclasses → the subclass's ``status_code``
  (401 auth, 400 bad request, 500 upstream/config, 502 bad upstream body)
- Any other ``Exception`` → 500 Internal Server Error
"""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from signal_dashboard.api.models import ErrorDetail, ErrorResponse
from signal_dashboard.core.logging import set_request_id
from signal_dashboard.errors import DashboardError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def error_response(exc: DashboardError) -> JSONResponse:
    """Build the JSON envelope for a domain error."""
    body = ErrorResponse(
        error=ErrorDetail(
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
    )


async def _handle_dashboard_error(
    request: Request,
    exc: DashboardError,
) -> JSONResponse:
    """Return the status mapped to the domain error."""
    if exc.status_code >= 500:
        logger.warning(
            "%s on %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
        )
    else:
        logger.info("%s on %s %s", exc.code, request.method, request.url.path)
    return error_response(exc)


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    This sits above the Starlette exception handler layer, ensuring that
    even exceptions not caught by ``add_exception_handler`` are converted
    to the standard error envelope rather than bubbling up as raw 500s.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            body = ErrorResponse(
                error=ErrorDetail(
                    code="INTERNAL_ERROR",
                    message="Internal server error",
                )
            )
            return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


class RequestContextMiddleware:
    """Assign a request id, expose it to logging and echo it in the response.

    Implemented as a plain ASGI middleware so streamed responses pass
    through untouched.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers") or []).get(REQUEST_ID_HEADER.lower().encode())
        request_id = incoming.decode("latin-1") if incoming else uuid.uuid4().hex[:16]
        set_request_id(request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER.lower().encode(), request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            set_request_id(None)


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.

    Domain exceptions are registered via ``add_exception_handler``.  The
    generic catch-all is an ASGI middleware that wraps the entire app to
    intercept any unhandled exception before Starlette's default
    ``ServerErrorMiddleware`` can convert it to a plain-text 500.
    """
    app.add_exception_handler(DashboardError, _handle_dashboard_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
    app.add_middleware(RequestContextMiddleware)
