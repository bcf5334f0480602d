"""Domain errors raised by the dashboard proxy handlers.

Each error carries the HTTP status and stable error code it maps to at the
API boundary (see ``signal_dashboard.api.middleware``).
"""

from __future__ import annotations

from typing import Any


class DashboardError(Exception):
    """Base class for errors surfaced to API callers as a JSON envelope."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class NotAuthenticatedError(DashboardError):
    """No token cookie was sent with the request."""

    status_code = 401
    code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "Not authenticated", *, details: Any = None) -> None:
        super().__init__(message, details=details)


class InvalidTokenError(DashboardError):
    """The token cookie is present but does not decode to a token set."""

    status_code = 401
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token", *, details: Any = None) -> None:
        super().__init__(message, details=details)


class TokenRefreshError(DashboardError):
    """The refresh-token exchange failed."""

    status_code = 401
    code = "REFRESH_FAILED"


class TokenExchangeError(DashboardError):
    """The authorization-code exchange failed."""

    status_code = 401
    code = "TOKEN_EXCHANGE_FAILED"


class UpstreamError(DashboardError):
    """A vendor API returned a non-success response or could not be reached."""

    status_code = 500
    code = "UPSTREAM_FAILURE"


class BadUpstreamResponseError(DashboardError):
    """A vendor API body could not be parsed as expected."""

    status_code = 502
    code = "BAD_UPSTREAM_RESPONSE"


class BadRequestError(DashboardError):
    """The caller's request body is malformed or incomplete."""

    status_code = 400
    code = "BAD_REQUEST"


class ConfigurationError(DashboardError):
    """A required server-side secret or setting is absent."""

    status_code = 500
    code = "CONFIGURATION_ERROR"
