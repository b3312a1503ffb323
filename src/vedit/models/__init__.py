"""Convenience exports for visual-edit-agent chat client implementations."""

from .chat import (
    ChatClientError,
    ChatModel,
    ChatStreamClient,
    ChatStreamError,
    ChatTransportError,
    Completed,
    ContentDelta,
    StreamError,
    StreamEvent,
    ToolCallBatch,
)
from .openai_compat import OpenAICompatibleClient

__all__ = [
    "ChatClientError",
    "ChatModel",
    "ChatStreamClient",
    "ChatStreamError",
    "ChatTransportError",
    "Completed",
    "ContentDelta",
    "OpenAICompatibleClient",
    "StreamError",
    "StreamEvent",
    "ToolCallBatch",
]
