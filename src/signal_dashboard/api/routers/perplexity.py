"""Perplexity chat proxy endpoint.

POST /api/perplexity/ask accepts either ``{"messages": [...]}`` (multi-turn)
or ``{"query": "..."}`` (single question), plus optional ``model``,
``temperature``, ``max_tokens`` and ``stream``.

Streaming requests relay the vendor's body as it arrives, with any content
encoding already decoded since only ``content-type`` is forwarded. The vendor
response is closed once the relay ends or the client goes away.
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from signal_dashboard import perplexity
from signal_dashboard.api.deps import get_config, get_http_client
from signal_dashboard.config import DashboardConfig
from signal_dashboard.errors import BadRequestError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/perplexity", tags=["perplexity"])


@router.post("/ask")
async def ask(
    request: Request,
    config: DashboardConfig = Depends(get_config),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    """Proxy a chat or query request to Perplexity."""
    api_key = config.require_api_key()

    try:
        body = await request.json()
    except ValueError as exc:
        raise BadRequestError("Invalid JSON") from exc

    chat_request = perplexity.build_chat_request(
        body,
        default_model=config.perplexity.default_model,
    )
    logger.info("Proxying to Perplexity: %s (stream=%s)", chat_request.url, chat_request.stream)

    if chat_request.stream:
        upstream = await perplexity.open_stream(http_client, chat_request, api_key=api_key)
        content_type = upstream.headers.get(
            "content-type", perplexity.DEFAULT_STREAM_CONTENT_TYPE
        )
        return StreamingResponse(
            upstream.aiter_bytes(),
            status_code=upstream.status_code,
            headers={"content-type": content_type},
            background=BackgroundTask(upstream.aclose),
        )

    status_code, data = await perplexity.ask(http_client, chat_request, api_key=api_key)
    return JSONResponse(content=data, status_code=status_code)
