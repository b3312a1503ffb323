"""Conversation records exchanged with the model and the outcomes derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Sequence

__all__ = [
    "Conversation",
    "ConversationError",
    "ConversationMessage",
    "OperationOutcome",
    "OutcomeKind",
    "Role",
    "ToolCall",
    "ToolOutcome",
    "TurnResult",
]


class ConversationError(ValueError):
    """Raised when a message would break the conversation ordering rules."""


class Role(str, Enum):
    """Message author roles understood by chat-completion style APIs."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ToolCall:
    """Tool invocation requested by the model.

    ``arguments`` holds the raw JSON text streamed by the model. It is only
    parsed at the tool boundary, see :func:`vedit.tools.catalog.parse_tool_arguments`.
    """

    id: str
    name: str
    arguments: str = "{}"

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    """Result of executing one tool call against the project file tree."""

    succeeded: bool
    output: str = ""
    error: str | None = None
    touched_paths: tuple[str, ...] = ()

    @classmethod
    def ok(cls, output: str, *, touched_paths: Iterable[str] = ()) -> ToolOutcome:
        return cls(succeeded=True, output=output, touched_paths=tuple(touched_paths))

    @classmethod
    def failure(cls, error: str) -> ToolOutcome:
        return cls(succeeded=False, error=error)

    def as_message_text(self) -> str:
        """Text reported back to the model for this outcome."""
        if self.succeeded:
            return self.output
        return self.error or "Tool execution failed"


@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """Single entry in the model conversation."""

    role: Role
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    tool_name: str | None = None
    succeeded: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        """Render the OpenAI-compatible wire representation."""
        payload: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_name is not None:
            payload["name"] = self.tool_name
        return payload


class Conversation(Sequence[ConversationMessage]):
    """Append-only message log that enforces tool-call correlation."""

    def __init__(self, messages: Iterable[ConversationMessage] = ()) -> None:
        self._messages: list[ConversationMessage] = []
        for message in messages:
            self._append(message)

    @classmethod
    def seed(cls, system: str, user: str) -> Conversation:
        """Create a conversation holding the system and user prompts."""
        return cls(
            [
                ConversationMessage(role=Role.SYSTEM, content=system),
                ConversationMessage(role=Role.USER, content=user),
            ]
        )

    def __getitem__(self, index):  # type: ignore[override]
        return self._messages[index]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ConversationMessage]:
        return iter(self._messages)

    def append_assistant(self, content: str | None, tool_calls: Sequence[ToolCall] = ()) -> ConversationMessage:
        message = ConversationMessage(
            role=Role.ASSISTANT,
            content=content or None,
            tool_calls=tuple(tool_calls),
        )
        self._append(message)
        return message

    def append_tool_result(self, call: ToolCall, outcome: ToolOutcome) -> ConversationMessage:
        message = ConversationMessage(
            role=Role.TOOL,
            content=outcome.as_message_text(),
            tool_call_id=call.id,
            tool_name=call.name,
            succeeded=outcome.succeeded,
        )
        self._append(message)
        return message

    def to_payload(self) -> list[dict[str, Any]]:
        return [message.to_payload() for message in self._messages]

    def _append(self, message: ConversationMessage) -> None:
        if message.role is Role.TOOL:
            if message.tool_call_id is None:
                raise ConversationError("Tool messages must reference a tool_call_id.")
            if message.tool_call_id not in self._announced_ids():
                raise ConversationError(
                    f"Tool result '{message.tool_call_id}' does not answer the preceding assistant message."
                )
        elif message.tool_calls and message.role is not Role.ASSISTANT:
            raise ConversationError("Only assistant messages may carry tool calls.")
        self._messages.append(message)

    def _announced_ids(self) -> set[str]:
        # Walk back over the tool results of the current turn to its assistant message.
        for message in reversed(self._messages):
            if message.role is Role.TOOL:
                continue
            if message.role is Role.ASSISTANT:
                return {call.id for call in message.tool_calls}
            break
        return set()


@dataclass(frozen=True, slots=True)
class TurnResult:
    """Accumulated output of a single model turn."""

    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()

    @property
    def tool_less(self) -> bool:
        return not self.tool_calls


class OutcomeKind(str, Enum):
    """Classification of how a multi-turn edit operation ended."""

    COMPLETED = "completed"
    COMPLETED_WITHOUT_TOOLS = "completed_without_tools"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class OperationOutcome:
    """Terminal value of one full edit operation."""

    succeeded: bool
    message: str
    tool_calls_executed: int = 0
    files_modified: frozenset[str] = field(default_factory=frozenset)
    error: str | None = None
    kind: OutcomeKind = OutcomeKind.COMPLETED
    turns: int = 0

    @property
    def exhausted(self) -> bool:
        return self.kind is OutcomeKind.EXHAUSTED
