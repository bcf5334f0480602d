"""Google OAuth endpoints.

Implements the two legs of the OAuth 2.0 authorization-code flow:

  1. GET /api/google/auth
     - Builds the Google authorization URL (calendar + identity scopes,
       offline access, forced consent) and redirects the browser to it.
     - A random ``state`` value is sent but not stored or verified.

  2. GET /api/google/callback
     - Exchanges the authorization code for a token set.
     - Stores the token set in the HTTP-only ``google_tokens`` cookie and
       redirects to the calendar view.

Both legs are reached through browser navigation, so callback failures
redirect to ``/calendar?error=<code>`` instead of returning JSON.
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from signal_dashboard.api.deps import get_config, get_http_client
from signal_dashboard.config import DashboardConfig
from signal_dashboard.errors import ConfigurationError, TokenExchangeError
from signal_dashboard.google_oauth import (
    build_authorization_url,
    exchange_code_for_tokens,
    generate_state,
)
from signal_dashboard.tokens import set_token_cookie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/google", tags=["google-oauth"])


def _calendar_url(config: DashboardConfig, error: str | None = None) -> str:
    url = f"{config.base_url}/calendar"
    if error:
        url = f"{url}?error={error}"
    return url


@router.get("/auth", responses={302: {"description": "Redirect to Google authorization URL"}})
async def google_auth(config: DashboardConfig = Depends(get_config)) -> RedirectResponse:
    """Begin the Google OAuth authorization flow."""
    if not config.google.client_id:
        raise ConfigurationError("Google OAuth client is not configured: GOOGLE_CLIENT_ID")

    # TODO: persist the state in a cookie and verify it in the callback (CSRF).
    state = generate_state()
    authorization_url = build_authorization_url(
        client_id=config.google.client_id,
        redirect_uri=config.redirect_uri,
        state=state,
    )
    logger.info("Google OAuth flow started")
    return RedirectResponse(url=authorization_url, status_code=302)


@router.get("/callback", responses={302: {"description": "Redirect to the calendar view"}})
async def google_callback(
    code: str | None = Query(default=None, description="Authorization code from Google."),
    config: DashboardConfig = Depends(get_config),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> RedirectResponse:
    """Exchange the authorization code and store the token cookie."""
    if not code:
        logger.warning("Google OAuth callback without an authorization code")
        return RedirectResponse(url=_calendar_url(config, "missing_code"), status_code=302)

    try:
        client_id, client_secret = config.require_google_client()
        tokens = await exchange_code_for_tokens(
            http_client,
            code=code,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=config.redirect_uri,
        )
    except (ConfigurationError, TokenExchangeError) as exc:
        logger.warning("Google OAuth token exchange failed: %s", exc.message)
        return RedirectResponse(
            url=_calendar_url(config, "token_exchange_failed"),
            status_code=302,
        )

    response = RedirectResponse(url=_calendar_url(config), status_code=302)
    set_token_cookie(response, tokens, secure=config.cookie_secure)
    logger.info(
        "Google OAuth complete (refresh_token=%s, cookie_max_age=%d)",
        tokens.refresh_token is not None,
        tokens.cookie_max_age(),
    )
    return response
