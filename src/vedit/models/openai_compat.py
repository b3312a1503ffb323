"""Streaming client for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Sequence

import httpx

from ..conversation import ConversationMessage, ToolCall
from .chat import (
    ChatModel,
    ChatStreamClient,
    Completed,
    ContentDelta,
    StreamError,
    StreamEvent,
    ToolCallBatch,
)

__all__ = ["OpenAICompatibleClient", "ToolCallAccumulator", "parse_sse_line"]

LOGGER = logging.getLogger(__name__)

_DONE_SENTINEL = "[DONE]"
_STATUS_MESSAGES = {
    401: "Invalid API key. Check the key configured for this provider.",
    402: "Insufficient credits. Add credits to the provider account.",
    429: "Rate limit exceeded. Please try again later.",
    503: "Service temporarily unavailable. Please try again later.",
}


def parse_sse_line(line: str) -> str | None:
    """Return the ``data:`` payload of a server-sent event line, if any."""
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None
    return line[len("data:") :].strip()


@dataclass(slots=True)
class ToolCallAccumulator:
    """Collect streamed tool-call fragments keyed by their ``index``."""

    _entries: dict[int, dict[str, Any]] = field(default_factory=dict)

    def feed(self, deltas: Sequence[Mapping[str, Any]]) -> None:
        for delta in deltas:
            if not isinstance(delta, Mapping):
                continue
            index = delta.get("index", 0)
            if not isinstance(index, int):
                index = 0
            entry = self._entries.setdefault(index, {"id": None, "name": "", "arguments": []})
            if delta.get("id"):
                entry["id"] = str(delta["id"])
            function = delta.get("function")
            if isinstance(function, Mapping):
                if function.get("name"):
                    entry["name"] = str(function["name"])
                fragment = function.get("arguments")
                if isinstance(fragment, str):
                    entry["arguments"].append(fragment)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def drain(self) -> tuple[ToolCall, ...]:
        calls: list[ToolCall] = []
        for index in sorted(self._entries):
            entry = self._entries[index]
            arguments = "".join(entry["arguments"]) or "{}"
            calls.append(
                ToolCall(
                    id=entry["id"] or f"call_{index}",
                    name=entry["name"],
                    arguments=arguments,
                )
            )
        self._entries.clear()
        return tuple(calls)


class OpenAICompatibleClient(ChatStreamClient):
    """Thin adapter around an OpenAI-compatible streaming chat API."""

    def __init__(
        self,
        *,
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        timeout: float = 120.0,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("VEDIT_API_KEY") or os.getenv("OPENAI_API_KEY")
        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")
        self._base_url = base_url.rstrip("/")
        self._temperature = temperature
        self._max_tokens = max_tokens
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "User-Agent": "visual-edit-agent/0.1",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        headers.update(extra_headers or {})
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 30.0)),
            headers=headers,
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/chat/completions"

    def build_payload(
        self,
        model: ChatModel,
        messages: Sequence[ConversationMessage],
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> dict[str, Any]:
        """Render the request body for one streamed completion."""
        payload: dict[str, Any] = {
            "model": model.id,
            "messages": [message.to_payload() for message in messages],
            "stream": True,
            "temperature": self._temperature,
        }
        if self._max_tokens is not None:
            payload["max_tokens"] = self._max_tokens
        if model.supports_tool_calls and tools:
            payload["tools"] = [dict(tool) for tool in tools]
            payload["tool_choice"] = "auto"
        return payload

    async def stream(
        self,
        model: ChatModel,
        messages: Sequence[ConversationMessage],
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> AsyncIterator[StreamEvent]:
        payload = self.build_payload(model, messages, tools)
        pending = ToolCallAccumulator()
        try:
            async with self._http.stream("POST", self.endpoint, json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    yield StreamError(self._describe_http_error(response.status_code, body))
                    return
                async for line in response.aiter_lines():
                    data = parse_sse_line(line)
                    if data is None:
                        continue
                    if data == _DONE_SENTINEL:
                        break
                    for event in self._events_from_chunk(data, pending):
                        yield event
        except httpx.TimeoutException:
            yield StreamError("The model response timed out.")
            return
        except httpx.HTTPError as error:
            yield StreamError(f"Failed to reach model endpoint: {error}")
            return

        if pending:
            yield ToolCallBatch(pending.drain())
        yield Completed()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _events_from_chunk(self, data: str, pending: ToolCallAccumulator) -> list[StreamEvent]:
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError:
            LOGGER.debug("Skipping malformed stream chunk: %s", data[:200])
            return []
        if not isinstance(chunk, Mapping):
            return []
        if isinstance(chunk.get("error"), Mapping):
            message = chunk["error"].get("message") or "Model returned an error."
            return [StreamError(str(message))]
        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
            return []
        delta = choices[0].get("delta")
        if not isinstance(delta, Mapping):
            return []
        events: list[StreamEvent] = []
        content = delta.get("content")
        if isinstance(content, str) and content:
            events.append(ContentDelta(content))
        tool_deltas = delta.get("tool_calls")
        if isinstance(tool_deltas, list):
            pending.feed(tool_deltas)
        return events

    @staticmethod
    def _describe_http_error(status_code: int, body: bytes) -> str:
        if status_code in _STATUS_MESSAGES:
            return _STATUS_MESSAGES[status_code]
        try:
            data = json.loads(body.decode("utf-8", errors="ignore"))
        except (json.JSONDecodeError, ValueError):
            data = None
        message = None
        if isinstance(data, Mapping) and isinstance(data.get("error"), Mapping):
            message = data["error"].get("message")
        if not message:
            return f"Request failed with status {status_code}"
        lowered = str(message).lower()
        if "does not exist" in lowered or "not found" in lowered:
            return "Model not found. The selected model may not be available; try a different model."
        return str(message)
