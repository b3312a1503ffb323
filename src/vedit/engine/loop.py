"""Multi-turn controller that alternates model turns with tool execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping, Sequence

from ..conversation import (
    Conversation,
    OperationOutcome,
    OutcomeKind,
    ToolCall,
    ToolOutcome,
    TurnResult,
)
from ..models.chat import ChatClientError, ChatModel, ChatStreamClient
from ..tools.catalog import (
    ToolArgumentError,
    default_tool_catalog,
    is_mutating,
    parse_tool_arguments,
    target_paths,
)
from ..tools.executor import ToolExecutor
from .turn import run_turn

__all__ = ["DEFAULT_COMPLETION_MESSAGE", "EditLoop", "TOOLS_UNSUPPORTED_MESSAGE"]

LOGGER = logging.getLogger(__name__)

DEFAULT_COMPLETION_MESSAGE = "Edit completed"
TOOLS_UNSUPPORTED_MESSAGE = (
    "This model does not support tool calls. Select a model with tool support to edit project files."
)

TurnHook = Callable[[int, TurnResult], None]


class EditLoop:
    """Run a conversation until the model stops calling tools or the budget is spent."""

    def __init__(
        self,
        client: ChatStreamClient,
        executor: ToolExecutor,
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        read_timeout: float | None = None,
        on_turn: TurnHook | None = None,
    ) -> None:
        self._client = client
        self._executor = executor
        if tools is None:
            tools = [definition.to_payload() for definition in default_tool_catalog()]
        self._tools = list(tools)
        self._read_timeout = read_timeout
        self._on_turn = on_turn

    async def run(
        self,
        model: ChatModel,
        project_id: str,
        conversation: Conversation,
        max_turns: int,
    ) -> OperationOutcome:
        """Drive ``conversation`` for at most ``max_turns`` model turns.

        The conversation is extended in place. Cancellation propagates to the
        caller; transport and stream failures become a failed outcome that keeps
        the counts gathered so far.
        """
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        if not model.supports_tool_calls:
            LOGGER.info("Rejecting edit for model %s without tool support", model.id)
            return OperationOutcome(
                succeeded=False,
                message=TOOLS_UNSUPPORTED_MESSAGE,
                error=TOOLS_UNSUPPORTED_MESSAGE,
                kind=OutcomeKind.FAILED,
            )

        executed = 0
        modified: set[str] = set()
        for turn in range(1, max_turns + 1):
            try:
                result = await run_turn(
                    self._client,
                    model,
                    conversation,
                    self._tools,
                    read_timeout=self._read_timeout,
                )
            except ChatClientError as error:
                LOGGER.warning("Model turn %s failed: %s", turn, error)
                return OperationOutcome(
                    succeeded=False,
                    message=str(error),
                    tool_calls_executed=executed,
                    files_modified=frozenset(modified),
                    error=str(error),
                    kind=OutcomeKind.FAILED,
                    turns=turn,
                )
            self._notify_turn(turn, result)
            conversation.append_assistant(result.content, result.tool_calls)

            if result.tool_less:
                kind = OutcomeKind.COMPLETED if executed else OutcomeKind.COMPLETED_WITHOUT_TOOLS
                return OperationOutcome(
                    succeeded=True,
                    message=result.content if result.content.strip() else DEFAULT_COMPLETION_MESSAGE,
                    tool_calls_executed=executed,
                    files_modified=frozenset(modified),
                    kind=kind,
                    turns=turn,
                )

            for call in result.tool_calls:
                outcome = await self._execute(project_id, call)
                executed += 1
                if outcome.succeeded and is_mutating(call.name):
                    modified.update(self._modified_paths(call, outcome))
                conversation.append_tool_result(call, outcome)

        LOGGER.info("Edit loop reached the %s turn budget after %s tool calls", max_turns, executed)
        return OperationOutcome(
            succeeded=True,
            message=f"{DEFAULT_COMPLETION_MESSAGE} (max turns reached: {max_turns})",
            tool_calls_executed=executed,
            files_modified=frozenset(modified),
            kind=OutcomeKind.EXHAUSTED,
            turns=max_turns,
        )

    async def _execute(self, project_id: str, call: ToolCall) -> ToolOutcome:
        try:
            return await self._executor.execute(project_id, call)
        except asyncio.CancelledError:
            raise
        except Exception as error:  # noqa: BLE001 - tool failures are reported to the model
            LOGGER.exception("Tool %s raised while executing call %s", call.name, call.id)
            return ToolOutcome.failure(f"Tool execution failed: {error}")

    @staticmethod
    def _modified_paths(call: ToolCall, outcome: ToolOutcome) -> set[str]:
        """Paths changed by a successful mutating call.

        Executors that report normalised paths win; otherwise the call's own path
        arguments are used.
        """
        if outcome.touched_paths:
            return set(outcome.touched_paths)
        try:
            return set(target_paths(parse_tool_arguments(call)))
        except ToolArgumentError as error:
            LOGGER.debug("No path recorded for %s (%s): %s", call.name, call.id, error)
            return set()

    def _notify_turn(self, turn: int, result: TurnResult) -> None:
        if self._on_turn is None:
            return
        try:
            self._on_turn(turn, result)
        except Exception:  # noqa: BLE001 - logging hooks must not break the loop
            LOGGER.exception("Turn hook failed on turn %s", turn)
