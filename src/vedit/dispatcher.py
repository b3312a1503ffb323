"""Request dispatcher with debounce and supersede semantics for visual edits."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Sequence

from .config import EditorSettings
from .conversation import Conversation, OperationOutcome
from .edits import (
    EditKind,
    EditRequest,
    FreeformEdit,
    ImageChange,
    MultiElementEdit,
    StyleChange,
    TextChange,
)
from .engine.loop import EditLoop
from .engine.transcript import TranscriptStore
from .models.chat import ChatModel, ChatStreamClient
from .prompts import build_prompt
from .render import LiveRenderer, NullRenderer
from .status import Status, StatusChannel
from .tools.executor import ToolExecutor

__all__ = ["CompletionCallback", "EditDispatcher", "NO_FILES_MODIFIED", "EXHAUSTED_SUFFIX"]

LOGGER = logging.getLogger(__name__)

CompletionCallback = Callable[[Status], None]

NO_FILES_MODIFIED = "No files modified."
EXHAUSTED_SUFFIX = " (max turns reached; changes may be incomplete)"

_NO_CHANGE_HINTS: Dict[EditKind, str] = {
    EditKind.STYLE: "The model answered without editing the stylesheet; try again or switch to another model.",
    EditKind.TEXT: "The model answered without editing the page; try again or switch to another model.",
    EditKind.IMAGE: "The model answered without editing the page; try again or switch to another model.",
    EditKind.FREEFORM: "Try rephrasing your request.",
    EditKind.MULTI: "Try being more specific about what changes you want.",
}

_RELOADING_KINDS = frozenset({EditKind.FREEFORM, EditKind.MULTI})


class EditDispatcher:
    """Turn inspector edits into persisted file changes.

    Style, text and image edits are rendered immediately and persisted after a
    quiet period; freeform and multi-element edits are persisted at once. A new
    request always supersedes the one in flight. All entry points must be called
    from the event loop that owns the dispatcher, and every status publication
    happens on that loop.
    """

    def __init__(
        self,
        client: ChatStreamClient,
        executor: ToolExecutor,
        project_id: str,
        *,
        renderer: LiveRenderer | None = None,
        settings: EditorSettings | None = None,
        status: StatusChannel | None = None,
        transcripts: TranscriptStore | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> None:
        self._settings = settings or EditorSettings()
        self._project_id = project_id
        self._renderer = renderer or NullRenderer()
        self._transcripts = transcripts
        self._edit_loop = EditLoop(
            client,
            executor,
            tools=tools,
            read_timeout=self._settings.read_timeout,
            on_turn=self._log_turn,
        )
        self.status = status or StatusChannel()
        self._debounce_task: asyncio.Task[None] | None = None
        self._live_tasks: set[asyncio.Task[Any]] = set()
        self._render_tasks: set[asyncio.Task[Any]] = set()

    @property
    def settings(self) -> EditorSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Entry points

    def on_style_change(
        self, request: StyleChange, model: ChatModel, on_complete: CompletionCallback | None = None
    ) -> None:
        self._require(request, StyleChange)
        self.submit(request, model, on_complete)

    def on_text_change(
        self, request: TextChange, model: ChatModel, on_complete: CompletionCallback | None = None
    ) -> None:
        self._require(request, TextChange)
        self.submit(request, model, on_complete)

    def on_image_change(
        self, request: ImageChange, model: ChatModel, on_complete: CompletionCallback | None = None
    ) -> None:
        self._require(request, ImageChange)
        self.submit(request, model, on_complete)

    def on_freeform_edit(
        self, request: FreeformEdit, model: ChatModel, on_complete: CompletionCallback | None = None
    ) -> None:
        self._require(request, FreeformEdit)
        self.submit(request, model, on_complete)

    def on_multi_element_edit(
        self, request: MultiElementEdit, model: ChatModel, on_complete: CompletionCallback | None = None
    ) -> None:
        self._require(request, MultiElementEdit)
        self.submit(request, model, on_complete)

    def submit(
        self, request: EditRequest, model: ChatModel, on_complete: CompletionCallback | None = None
    ) -> None:
        """Render ``request`` live, then schedule its persistence."""
        loop = asyncio.get_running_loop()
        self._render(request)
        self._cancel_debounce()
        if request.kind.debounced:
            self._debounce_task = loop.create_task(self._debounce(request, model, on_complete))
        else:
            self._start_persistence(request, model, on_complete)

    def cancel(self) -> None:
        """Drop pending and in-flight work and publish Idle."""
        self._cancel_debounce()
        for task in list(self._live_tasks):
            task.cancel()
        self.status.publish(Status.idle())

    def reset_status(self) -> None:
        self.status.publish(Status.idle())

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or persistence run remains."""
        while True:
            pending = [task for task in self._outstanding() if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    async def aclose(self) -> None:
        """Cancel outstanding work and wait for it to unwind."""
        self.cancel()
        for task in self._render_tasks:
            task.cancel()
        pending = [task for task in self._outstanding() if not task.done()]
        if pending:
            await asyncio.wait(pending)

    # ------------------------------------------------------------------
    # Scheduling

    @staticmethod
    def _require(request: EditRequest, expected: type) -> None:
        if not isinstance(request, expected):
            raise TypeError(f"Expected {expected.__name__}, got {type(request).__name__}")

    def _outstanding(self) -> list[asyncio.Task[Any]]:
        tasks: list[asyncio.Task[Any]] = list(self._live_tasks) + list(self._render_tasks)
        if self._debounce_task is not None:
            tasks.append(self._debounce_task)
        return tasks

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    async def _debounce(
        self, request: EditRequest, model: ChatModel, on_complete: CompletionCallback | None
    ) -> None:
        await asyncio.sleep(self._settings.debounce_seconds)
        self._debounce_task = None
        self._start_persistence(request, model, on_complete)

    def _start_persistence(
        self, request: EditRequest, model: ChatModel, on_complete: CompletionCallback | None
    ) -> None:
        unwinding = [task for task in self._live_tasks if not task.done()]
        for task in unwinding:
            task.cancel()
        task = asyncio.get_running_loop().create_task(
            self._persist(request, model, on_complete, unwinding)
        )
        self._live_tasks.add(task)
        task.add_done_callback(self._live_tasks.discard)

    # ------------------------------------------------------------------
    # Persistence

    async def _persist(
        self,
        request: EditRequest,
        model: ChatModel,
        on_complete: CompletionCallback | None,
        unwinding: Sequence[asyncio.Task[Any]],
    ) -> Status:
        conversation: Conversation | None = None
        outcome: OperationOutcome | None = None
        try:
            if unwinding:
                # Superseded runs publish Idle while unwinding; let them finish first.
                await asyncio.wait(unwinding)
            self.status.publish(Status.analyzing())
            prompt = build_prompt(request, limits=self._settings.excerpt_limits)
            conversation = Conversation.seed(prompt.system, prompt.user)
            outcome = await self._edit_loop.run(
                model, self._project_id, conversation, self._settings.max_turns
            )
            if outcome.succeeded and outcome.tool_calls_executed > 0:
                self.status.publish(Status.persisting())
                if request.kind in _RELOADING_KINDS:
                    await asyncio.sleep(self._settings.reload_delay_seconds)
                    await self._reload()
            final = self._terminal_status(request, outcome)
        except asyncio.CancelledError:
            LOGGER.debug("%s edit superseded or cancelled", request.kind.value)
            self.status.publish(Status.idle())
            raise
        except Exception as error:  # noqa: BLE001 - every surviving request ends in a terminal status
            LOGGER.exception("%s edit failed", request.kind.value)
            final = Status.failed(str(error) or type(error).__name__)
            self._record(request, model, conversation, outcome, final, error=error)
        else:
            self._record(request, model, conversation, outcome, final)

        self.status.publish(final)
        if on_complete is not None:
            try:
                on_complete(final)
            except Exception:  # noqa: BLE001 - caller callbacks must not affect dispatcher state
                LOGGER.exception("Completion callback failed for %s edit", request.kind.value)
        return final

    def _terminal_status(self, request: EditRequest, outcome: OperationOutcome) -> Status:
        if not outcome.succeeded:
            return Status.failed(outcome.error or outcome.message or "Edit failed")
        if outcome.tool_calls_executed == 0:
            LOGGER.warning("Model finished a %s edit without calling tools: %s", request.kind.value, outcome.message)
            return Status.failed(f"{NO_FILES_MODIFIED} {_NO_CHANGE_HINTS[request.kind]}")
        summary = self._summary(request)
        if outcome.exhausted:
            summary += EXHAUSTED_SUFFIX
        return Status.succeeded(summary)

    @staticmethod
    def _summary(request: EditRequest) -> str:
        if isinstance(request, StyleChange):
            return "Style applied"
        if isinstance(request, TextChange):
            return "Text updated"
        if isinstance(request, ImageChange):
            return "Image updated"
        if isinstance(request, MultiElementEdit):
            count = len(request.elements)
            return "Element updated" if count == 1 else f"{count} elements updated"
        return "Changes applied"

    def _record(
        self,
        request: EditRequest,
        model: ChatModel,
        conversation: Conversation | None,
        outcome: OperationOutcome | None,
        status: Status,
        *,
        error: BaseException | None = None,
    ) -> None:
        if self._transcripts is None:
            return
        self._transcripts.record(
            request,
            model,
            conversation,
            outcome=outcome,
            status=status,
            error=error,
        )

    def _log_turn(self, turn: int, result: Any) -> None:
        LOGGER.debug(
            "Turn %s: %s tool call(s), %s characters of text",
            turn,
            len(result.tool_calls),
            len(result.content),
        )

    # ------------------------------------------------------------------
    # Live rendering

    def _render(self, request: EditRequest) -> None:
        try:
            if isinstance(request, StyleChange):
                result = self._renderer.apply_style(request.selector, request.property, request.new_value)
            elif isinstance(request, TextChange):
                result = self._renderer.apply_text(request.selector, request.new_text)
            elif isinstance(request, ImageChange):
                result = self._renderer.apply_image_src(request.selector, request.new_src)
            else:
                return
        except Exception:  # noqa: BLE001 - preview failures never block persistence
            LOGGER.exception("Live preview update failed for %s", request.kind.value)
            return
        if inspect.isawaitable(result):
            self._schedule_render(result)

    def _schedule_render(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._render_tasks.add(task)
        task.add_done_callback(self._render_finished)

    def _render_finished(self, task: asyncio.Future[Any]) -> None:
        self._render_tasks.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Live preview update failed: %s", error)

    async def _reload(self) -> None:
        try:
            result = self._renderer.reload()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001 - a failed reload leaves the persisted edit intact
            LOGGER.exception("Preview reload failed")
