"""Fold a streamed model response into a single turn result."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping, Sequence

from ..conversation import Conversation, ToolCall, TurnResult
from ..models.chat import (
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

__all__ = ["TurnAccumulator", "fold_events", "run_turn"]

LOGGER = logging.getLogger(__name__)


class TurnAccumulator:
    """Explicit fold state for one streamed turn.

    Text fragments are concatenated in arrival order and tool-call batches are
    merged in order. A :class:`StreamError` raises :class:`ChatStreamError`;
    anything after :class:`Completed` is ignored.
    """

    __slots__ = ("_fragments", "_tool_calls", "_completed")

    def __init__(self) -> None:
        self._fragments: list[str] = []
        self._tool_calls: list[ToolCall] = []
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def feed(self, event: StreamEvent) -> bool:
        """Consume ``event`` and return True once the turn has completed."""
        if self._completed:
            return True
        if isinstance(event, ContentDelta):
            self._fragments.append(event.text)
        elif isinstance(event, ToolCallBatch):
            self._tool_calls.extend(event.tool_calls)
        elif isinstance(event, Completed):
            self._completed = True
        elif isinstance(event, StreamError):
            raise ChatStreamError(event.message)
        else:
            LOGGER.debug("Ignoring unknown stream event %r", event)
        return self._completed

    def result(self) -> TurnResult:
        if not self._completed:
            raise ChatStreamError("Stream ended before completion.")
        return TurnResult(content="".join(self._fragments), tool_calls=tuple(self._tool_calls))


def fold_events(events: Iterable[StreamEvent]) -> TurnResult:
    """Fold an already materialised event sequence into a :class:`TurnResult`."""
    accumulator = TurnAccumulator()
    for event in events:
        if accumulator.feed(event):
            break
    return accumulator.result()


async def run_turn(
    client: ChatStreamClient,
    model: ChatModel,
    conversation: Conversation,
    tools: Sequence[Mapping[str, Any]] = (),
    *,
    read_timeout: float | None = None,
) -> TurnResult:
    """Stream one model response for ``conversation`` and fold it.

    ``read_timeout`` bounds the wait for each individual event. The stream is
    closed on every exit path, including cancellation.
    """
    accumulator = TurnAccumulator()
    stream = client.stream(model, list(conversation), tools)
    try:
        while True:
            try:
                if read_timeout is None:
                    event = await stream.__anext__()
                else:
                    event = await asyncio.wait_for(stream.__anext__(), timeout=read_timeout)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError as error:
                raise ChatTransportError(
                    f"No response from model within {read_timeout:g} seconds."
                ) from error
            if accumulator.feed(event):
                break
    finally:
        closer = getattr(stream, "aclose", None)
        if closer is not None:
            await closer()
    return accumulator.result()
