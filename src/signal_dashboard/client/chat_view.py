"""Chat view state: transcript, upstream payload shaping and stream consumption."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from signal_dashboard.client.stream import ChatDelta, ChatStreamParser, Citation

logger = logging.getLogger(__name__)

CHAT_ENDPOINT = "/api/perplexity/ask"
CHAT_ERROR_MESSAGE = "Failed to get answer. Please try again."

SYSTEM_PROMPT = (
    "You are my personal assistant. Your sole job is to help me learn and expand my "
    "capabilities. Only answer questions that can be answered by searching the internet "
    "for real, up-to-date answers. Be as helpful as possible, and always prefer concise, "
    "clear answers over long or verbose ones."
)
GREETING = "Hi! What questions do you have for me?"

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    id: int
    role: str
    content: str
    citations: list[Citation] = field(default_factory=list)


class ChatStreamError(Exception):
    """The chat endpoint answered with a non-success status."""


def build_upstream_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Shape the transcript for the chat endpoint.

    The system message (if any) comes first, followed by the conversation
    with any leading assistant turns removed.
    """
    system = next((m for m in messages if m.role == ROLE_SYSTEM), None)
    conversation = list(
        itertools.dropwhile(
            lambda m: m.role == ROLE_ASSISTANT,
            (m for m in messages if m.role != ROLE_SYSTEM),
        )
    )
    upstream = [{"role": system.role, "content": system.content}] if system else []
    upstream.extend({"role": m.role, "content": m.content} for m in conversation)
    return upstream


class ChatView:
    """Append-only chat transcript driven by the streaming chat endpoint.

    ``on_delta`` is called with the in-progress assistant message and each
    parsed delta as frames arrive, so a renderer can update incrementally.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        endpoint: str = CHAT_ENDPOINT,
        system_prompt: str = SYSTEM_PROMPT,
        greeting: str = GREETING,
        model: str | None = None,
        on_delta: Callable[[ChatMessage, ChatDelta], None] | None = None,
    ) -> None:
        self._http_client = http_client
        self._endpoint = endpoint
        self._model = model
        self._on_delta = on_delta
        self._ids = itertools.count(1)
        self.messages: list[ChatMessage] = [
            ChatMessage(id=next(self._ids), role=ROLE_SYSTEM, content=system_prompt),
            ChatMessage(id=next(self._ids), role=ROLE_ASSISTANT, content=greeting),
        ]
        self.loading = False
        self.error: str | None = None

    @property
    def visible_messages(self) -> list[ChatMessage]:
        """Messages shown to the user (everything but the system prompt)."""
        return [m for m in self.messages if m.role != ROLE_SYSTEM]

    async def send(self, text: str) -> ChatMessage | None:
        """Submit *text* and stream the answer into the transcript.

        Returns the assistant message, or ``None`` when nothing was sent or
        the request failed (``self.error`` is set in that case).
        """
        if not text.strip() or self.loading:
            return None

        self.error = None
        self.messages.append(ChatMessage(id=next(self._ids), role=ROLE_USER, content=text))
        body: dict = {"messages": build_upstream_messages(self.messages), "stream": True}
        if self._model:
            body["model"] = self._model

        self.loading = True
        try:
            return await self._stream_answer(body)
        except (httpx.HTTPError, ChatStreamError) as exc:
            logger.warning("Chat request failed: %s", exc)
            self.error = CHAT_ERROR_MESSAGE
            return None
        finally:
            self.loading = False

    async def _stream_answer(self, body: dict) -> ChatMessage:
        async with self._http_client.stream("POST", self._endpoint, json=body) as response:
            if not response.is_success:
                raise ChatStreamError(f"chat endpoint returned HTTP {response.status_code}")

            assistant = ChatMessage(id=next(self._ids), role=ROLE_ASSISTANT, content="")
            self.messages.append(assistant)

            parser = ChatStreamParser()
            async for chunk in response.aiter_bytes():
                for delta in parser.feed(chunk):
                    self._apply(assistant, delta)
            for delta in parser.flush():
                self._apply(assistant, delta)
        return assistant

    def _apply(self, message: ChatMessage, delta: ChatDelta) -> None:
        if delta.content:
            message.content += delta.content
        if delta.citations is not None:
            message.citations = list(delta.citations)
        if self._on_delta is not None:
            self._on_delta(message, delta)
