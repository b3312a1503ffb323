"""Streaming chat client base class shared by all model integrations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Sequence, Union

from ..conversation import ConversationMessage, ToolCall

__all__ = [
    "ChatClientError",
    "ChatModel",
    "ChatStreamClient",
    "ChatStreamError",
    "ChatTransportError",
    "Completed",
    "ContentDelta",
    "StreamError",
    "StreamEvent",
    "ToolCallBatch",
]


class ChatClientError(RuntimeError):
    """Base error raised for streaming chat failures."""


class ChatTransportError(ChatClientError):
    """Raised when the transport fails to open or read the stream."""


class ChatStreamError(ChatClientError):
    """Raised when the stream reports an error event or ends prematurely."""


@dataclass(frozen=True, slots=True)
class ChatModel:
    """Descriptor for a model the editor can talk to."""

    id: str
    name: str = ""
    provider: str = "openai"
    context_length: int = 4096
    supports_streaming: bool = True
    supports_tool_calls: bool = True
    is_thinking_model: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ChatModel:
        """Build a descriptor from a configuration entry, ignoring unknown keys."""
        model_id = str(data.get("id") or "").strip()
        if not model_id:
            raise ValueError("Model entries require a non-empty 'id'.")
        context_length = data.get("context_length", 4096)
        if not isinstance(context_length, int) or context_length <= 0:
            context_length = 4096
        return cls(
            id=model_id,
            name=str(data.get("name") or ""),
            provider=str(data.get("provider") or "openai"),
            context_length=context_length,
            supports_streaming=bool(data.get("supports_streaming", True)),
            supports_tool_calls=bool(data.get("supports_tool_calls", True)),
            is_thinking_model=bool(data.get("is_thinking_model", False)),
        )


@dataclass(frozen=True, slots=True)
class ContentDelta:
    """Fragment of assistant text."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolCallBatch:
    """One or more completed tool calls announced by the model."""

    tool_calls: tuple[ToolCall, ...]


@dataclass(frozen=True, slots=True)
class Completed:
    """Normal end of the stream."""


@dataclass(frozen=True, slots=True)
class StreamError:
    """Error reported in-band by the stream."""

    message: str


StreamEvent = Union[ContentDelta, ToolCallBatch, Completed, StreamError]


class ChatStreamClient:
    """Abstract streaming client; subclasses implement :meth:`stream`.

    Implementations must preserve emission order and eventually yield either
    :class:`Completed` or :class:`StreamError`.
    """

    def stream(
        self,
        model: ChatModel,
        messages: Sequence[ConversationMessage],
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> AsyncIterator[StreamEvent]:
        raise NotImplementedError("Subclasses must implement stream().")

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        return None
