"""Shared Pydantic response models for the Dashboard API.

Provides the error envelope returned by every handler on failure and the
small summary models used by the shell endpoints.  Vendor payloads
(calendar events, chat completions) are passed through as plain JSON and
have no model here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Structured error payload."""

    code: str
    message: str
    details: Any = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------


class NavigationItem(BaseModel):
    """One sidebar entry."""

    name: str
    href: str
    icon: str
    available: bool


class HealthResponse(BaseModel):
    status: str = "ok"
