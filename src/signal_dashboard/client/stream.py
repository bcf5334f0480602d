"""Incremental parser for the chat endpoint's server-sent event stream.

The stream is consumed chunk by chunk.  Bytes are decoded incrementally,
split on newlines, and only ``data:`` lines are treated as frames.  A
trailing partial line is held back until the next chunk completes it, so a
JSON frame split across chunk boundaries is parsed once it is whole.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class Citation:
    label: str | None = None
    url: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> Citation:
        """Build a citation from a ``{label, url}`` object or a bare URL string."""
        if isinstance(payload, str):
            return cls(url=payload)
        if isinstance(payload, dict):
            label = payload.get("label")
            url = payload.get("url")
            return cls(
                label=label if isinstance(label, str) else None,
                url=url if isinstance(url, str) else None,
            )
        return cls()


@dataclass(frozen=True)
class ChatDelta:
    """One parsed frame: an optional content fragment and/or citation list."""

    content: str | None = None
    citations: list[Citation] | None = None


def parse_frame(line: str) -> ChatDelta | None:
    """Parse one line of the stream.

    Returns ``None`` for blank lines, non-``data:`` lines, the ``[DONE]``
    sentinel, malformed JSON, and frames carrying neither content nor
    citations.
    """
    trimmed = line.strip()
    if not trimmed.startswith(DATA_PREFIX):
        return None
    raw = trimmed[len(DATA_PREFIX) :].strip()
    if raw == DONE_SENTINEL:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream frame")
        return None

    delta = _first_choice_delta(payload)
    if delta is None:
        return None

    content = delta.get("content")
    if not isinstance(content, str) or not content:
        content = None

    raw_citations = delta.get("citations")
    citations = (
        [Citation.from_payload(item) for item in raw_citations]
        if isinstance(raw_citations, list)
        else None
    )

    if content is None and citations is None:
        return None
    return ChatDelta(content=content, citations=citations)


def _first_choice_delta(payload: Any) -> dict[str, Any] | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    return delta if isinstance(delta, dict) else None


class ChatStreamParser:
    """Feed raw byte chunks, get back the deltas completed by each chunk."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[ChatDelta]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[ChatDelta]:
        """Parse whatever remains once the stream has ended."""
        remaining = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines([remaining])

    @staticmethod
    def _parse_lines(lines: list[str]) -> list[ChatDelta]:
        deltas: list[ChatDelta] = []
        for line in lines:
            delta = parse_frame(line)
            if delta is not None:
                deltas.append(delta)
        return deltas
