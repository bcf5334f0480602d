"""Cookie-backed Google token store.

The browser holds the provider's token set as a JSON object in the HTTP-only
``google_tokens`` cookie.  The server only reads fields from it and replaces
it wholesale; there is no server-side session.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.responses import Response

from signal_dashboard.errors import InvalidTokenError, NotAuthenticatedError

TOKEN_COOKIE_NAME = "google_tokens"

# Cookie lifetime when a refresh token is present (60 days).
REFRESH_COOKIE_MAX_AGE = 60 * 24 * 60 * 60
# Fallback when the token set carries neither a refresh token nor expires_in.
DEFAULT_COOKIE_MAX_AGE = 3600


class TokenSet(BaseModel):
    """OAuth credential bundle issued by Google.

    Unknown provider fields (``scope``, ``id_token``, ...) are kept so that the
    cookie round-trips whatever the provider returned.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None

    @classmethod
    def from_provider(cls, payload: Any) -> TokenSet:
        """Build a token set from a token-endpoint JSON response."""
        if not isinstance(payload, dict):
            raise ValueError("token response must be a JSON object")
        return cls.model_validate(payload)

    def refreshed_with(self, payload: Any) -> TokenSet:
        """Return the token set issued by a refresh-token grant.

        Google usually omits ``refresh_token`` from refresh responses; the
        current one is carried into the new set in that case.
        """
        new_tokens = TokenSet.from_provider(payload)
        if new_tokens.refresh_token is None and self.refresh_token is not None:
            return new_tokens.model_copy(update={"refresh_token": self.refresh_token})
        return new_tokens

    def to_cookie_value(self) -> str:
        return self.model_dump_json(exclude_none=True)

    def cookie_max_age(self) -> int:
        """Cookie lifetime in seconds.

        60 days when a refresh token is present, otherwise the token's own
        ``expires_in``, otherwise one hour.
        """
        if self.refresh_token:
            return REFRESH_COOKIE_MAX_AGE
        if self.expires_in is not None and self.expires_in > 0:
            return self.expires_in
        return DEFAULT_COOKIE_MAX_AGE


def parse_token_cookie(raw_value: str | None) -> TokenSet:
    """Decode the ``google_tokens`` cookie.

    Raises
    ------
    NotAuthenticatedError
        If the cookie is absent.
    InvalidTokenError
        If the cookie does not decode to a token set.
    """
    if raw_value is None:
        raise NotAuthenticatedError()
    try:
        return TokenSet.model_validate_json(raw_value)
    except ValidationError as exc:
        raise InvalidTokenError() from exc


def set_token_cookie(response: Response, tokens: TokenSet, *, secure: bool) -> None:
    """Write *tokens* into the token cookie on *response*."""
    response.set_cookie(
        TOKEN_COOKIE_NAME,
        tokens.to_cookie_value(),
        max_age=tokens.cookie_max_age(),
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )
