"""Perplexity chat/query proxy helpers.

A caller body is normalized into one of two vendor requests:

- ``{"messages": [...]}`` → ``/chat/completions`` (multi-turn)
- ``{"query": "..."}``    → ``/query`` (single question)

Optional controls are forwarded only when the caller supplied them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from signal_dashboard.config import DEFAULT_CHAT_MODEL
from signal_dashboard.errors import BadRequestError, BadUpstreamResponseError, UpstreamError

logger = logging.getLogger(__name__)

PERPLEXITY_API_BASE_URL = "https://api.perplexity.ai"
CHAT_ENDPOINT = f"{PERPLEXITY_API_BASE_URL}/chat/completions"
QUERY_ENDPOINT = f"{PERPLEXITY_API_BASE_URL}/query"
DEFAULT_STREAM_CONTENT_TYPE = "text/event-stream"


@dataclass(frozen=True)
class ChatRequest:
    """A normalized vendor request."""

    url: str
    payload: dict[str, Any]
    stream: bool = False


def build_chat_request(body: Any, *, default_model: str = DEFAULT_CHAT_MODEL) -> ChatRequest:
    """Route a caller body to the multi-turn or single-query endpoint.

    Raises
    ------
    BadRequestError
        If *body* is not an object or carries neither ``messages`` nor ``query``.
    """
    if not isinstance(body, dict):
        raise BadRequestError("Invalid JSON")

    stream = body.get("stream") is True

    if isinstance(body.get("messages"), list):
        model = body.get("model")
        payload: dict[str, Any] = {
            "model": model if isinstance(model, str) else default_model,
            "messages": body["messages"],
        }
        if body.get("temperature") is not None:
            payload["temperature"] = body["temperature"]
        if body.get("max_tokens") is not None:
            payload["max_tokens"] = body["max_tokens"]
        if stream:
            payload["stream"] = True
        return ChatRequest(url=CHAT_ENDPOINT, payload=payload, stream=stream)

    if isinstance(body.get("query"), str):
        payload = {"query": body["query"]}
        if stream:
            payload["stream"] = True
        return ChatRequest(url=QUERY_ENDPOINT, payload=payload, stream=stream)

    raise BadRequestError("Missing required parameters: messages or query")


def _headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


async def open_stream(
    http_client: httpx.AsyncClient,
    request: ChatRequest,
    *,
    api_key: str,
) -> httpx.Response:
    """Send *request* and return the vendor response with its body unread.

    The caller owns the response and must ``aclose()`` it once the body has
    been relayed.
    """
    vendor_request = http_client.build_request(
        "POST",
        request.url,
        json=request.payload,
        headers=_headers(api_key),
    )
    try:
        return await http_client.send(vendor_request, stream=True)
    except httpx.HTTPError as exc:
        logger.error("Failed to contact Perplexity API: %s", exc)
        raise UpstreamError("Failed to contact Perplexity API", details=str(exc)) from exc


async def ask(
    http_client: httpx.AsyncClient,
    request: ChatRequest,
    *,
    api_key: str,
) -> tuple[int, Any]:
    """Send *request* and return ``(vendor_status, parsed_body)``.

    Raises
    ------
    UpstreamError
        If the vendor cannot be reached.
    BadUpstreamResponseError
        If the vendor body is not valid JSON.
    """
    try:
        response = await http_client.post(
            request.url,
            json=request.payload,
            headers=_headers(api_key),
        )
    except httpx.HTTPError as exc:
        logger.error("Failed to contact Perplexity API: %s", exc)
        raise UpstreamError("Failed to contact Perplexity API", details=str(exc)) from exc

    try:
        data = response.json()
    except ValueError as exc:
        logger.warning(
            "Failed to parse Perplexity response as JSON (status=%d)", response.status_code
        )
        raise BadUpstreamResponseError(
            "Invalid response from Perplexity", details=response.text
        ) from exc

    logger.info("Perplexity API status: %d", response.status_code)
    return response.status_code, data
