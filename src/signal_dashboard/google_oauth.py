"""Google OAuth 2.0 authorization-code and refresh-token helpers.

Provides:
- ``build_authorization_url()``: the consent-screen URL for the authorize step.
- ``exchange_code_for_tokens()``: authorization code → ``TokenSet``.
- ``refresh_tokens()``: refresh token → new ``TokenSet``.

Secret material (client secret, tokens) is never logged.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from signal_dashboard.errors import TokenExchangeError, TokenRefreshError
from signal_dashboard.tokens import TokenSet

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

SCOPES = " ".join(
    [
        "https://www.googleapis.com/auth/calendar",
        "openid",
        "email",
        "profile",
    ]
)


def generate_state() -> str:
    """Generate a random ``state`` value for the authorization request."""
    return secrets.token_urlsafe(16)


def build_authorization_url(*, client_id: str, redirect_uri: str, state: str) -> str:
    """Return the Google consent-screen URL requesting offline access."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": SCOPES,
        "access_type": "offline",
        "prompt": "consent",  # Force refresh token to be returned
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def _post_token_endpoint(http_client: httpx.AsyncClient, data: dict[str, str]) -> Any:
    response = await http_client.post(
        GOOGLE_TOKEN_URL,
        data=data,
        headers={"Accept": "application/json"},
    )
    if response.status_code != 200:
        raise ValueError(f"Token endpoint returned HTTP {response.status_code}")
    return response.json()


async def exchange_code_for_tokens(
    http_client: httpx.AsyncClient,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
) -> TokenSet:
    """Exchange an authorization code for a token set.

    Raises
    ------
    TokenExchangeError
        If the exchange fails for any reason (HTTP error, invalid body,
        network error).
    """
    payload = {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    }
    try:
        token_data = await _post_token_endpoint(http_client, payload)
        return TokenSet.from_provider(token_data)
    except httpx.HTTPError as exc:
        raise TokenExchangeError(f"Network error during token exchange: {exc}") from exc
    except ValueError as exc:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors.
        raise TokenExchangeError(f"Token exchange failed: {exc}") from exc


async def refresh_tokens(
    http_client: httpx.AsyncClient,
    current: TokenSet,
    *,
    client_id: str,
    client_secret: str,
) -> TokenSet:
    """Exchange ``current.refresh_token`` for a new token set.

    No locking is done: two requests refreshing at the same time both get a
    valid access token and the last cookie written wins.

    Raises
    ------
    TokenRefreshError
        If there is no refresh token or the refresh request fails.
    """
    if not current.refresh_token:
        raise TokenRefreshError("No refresh token available")

    payload = {
        "refresh_token": current.refresh_token,
        "client_id": client_id,
        "client_secret": client_secret,
        "grant_type": "refresh_token",
    }
    try:
        token_data = await _post_token_endpoint(http_client, payload)
        new_tokens = current.refreshed_with(token_data)
    except httpx.HTTPError as exc:
        raise TokenRefreshError(f"Google OAuth token refresh request failed: {exc}") from exc
    except ValueError as exc:
        raise TokenRefreshError(f"Google OAuth token refresh failed: {exc}") from exc

    logger.info("Refreshed Google access token")
    return new_tokens
