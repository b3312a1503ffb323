from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence

from vedit.config import EditorSettings
from vedit.conversation import ConversationMessage, ToolCall
from vedit.dispatcher import EditDispatcher
from vedit.edits import FreeformEdit, ImageChange, MultiElementEdit, SelectedElement, StyleChange, TextChange
from vedit.engine.transcript import TranscriptStore, load_transcript
from vedit.models.chat import (
    ChatModel,
    ChatStreamClient,
    Completed,
    ContentDelta,
    StreamError,
    StreamEvent,
    ToolCallBatch,
)
from vedit.render import LiveRenderer
from vedit.status import Status, StatusKind
from vedit.tools.executor import ProjectToolExecutor

MODEL = ChatModel(id="tool-model")
FAST = EditorSettings(debounce_seconds=0.02, max_turns=3, reload_delay_seconds=0.0)


def _call(call_id: str, name: str, **arguments: str) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


def _tools(*calls: ToolCall) -> list[StreamEvent]:
    return [ToolCallBatch(tuple(calls)), Completed()]


def _text(content: str) -> list[StreamEvent]:
    return [ContentDelta(content), Completed()]


class _ScriptedClient(ChatStreamClient):
    """Serves scripted turns in order; ``holds`` delays the numbered stream calls."""

    def __init__(self, turns: Sequence[Sequence[StreamEvent]], *, holds: Mapping[int, float] | None = None) -> None:
        self.turns = [list(turn) for turn in turns]
        self.holds = dict(holds or {})
        self.calls = 0
        self.prompts: list[str] = []

    async def stream(
        self,
        model: ChatModel,
        messages: Sequence[ConversationMessage],
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> AsyncIterator[StreamEvent]:
        index = self.calls
        self.calls += 1
        self.prompts.append(messages[1].content or "")
        hold = self.holds.get(index)
        if hold:
            await asyncio.sleep(hold)
        for event in self.turns[min(index, len(self.turns) - 1)]:
            yield event


class _RecordingRenderer(LiveRenderer):
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def apply_style(self, selector: str, property: str, value: str) -> None:
        self.events.append(("style", selector, property, value))

    def apply_text(self, selector: str, text: str) -> None:
        self.events.append(("text", selector, text))

    def apply_image_src(self, selector: str, src: str) -> None:
        self.events.append(("image", selector, src))

    def reload(self) -> None:
        self.events.append(("reload",))


def _run(scenario: Callable[[], Awaitable[Any]]) -> Any:
    return asyncio.run(scenario())


def _dispatcher(client: ChatStreamClient, site_root, **kwargs: Any) -> EditDispatcher:
    executor = ProjectToolExecutor({"site": site_root})
    kwargs.setdefault("settings", FAST)
    return EditDispatcher(client, executor, "site", **kwargs)


def test_render_happens_before_debounce_and_burst_persists_once(tiny_site) -> None:
    client = _ScriptedClient([_tools(_call("c1", "read_file", path="style.css")), _text("Done")])
    renderer = _RecordingRenderer()
    completions: list[tuple[str, Status]] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root, renderer=renderer)
        for index, value in enumerate(["#100", "#200", "#300", "#400"]):
            dispatcher.on_style_change(
                StyleChange(selector=".card", property="color", new_value=value),
                MODEL,
                on_complete=lambda status, value=value: completions.append((value, status)),
            )
            assert renderer.events[-1] == ("style", ".card", "color", value)
            assert client.calls == 0
        await dispatcher.wait_idle()

    _run(scenario)

    assert len(renderer.events) == 4
    assert client.calls == 2
    assert '"#400"' in client.prompts[0]
    assert completions == [("#400", Status.succeeded("Style applied"))]


def test_card_style_change_end_to_end(tiny_site) -> None:
    client = _ScriptedClient(
        [
            _tools(_call("c1", "read_file", path="style.css")),
            _tools(
                _call(
                    "c2",
                    "patch_file",
                    path="style.css",
                    old_content="background-color: blue;",
                    new_content="background-color: red;",
                )
            ),
            _text("Updated the card background."),
        ]
    )
    transcripts = TranscriptStore(tiny_site.logs_root)
    statuses: list[StatusKind] = []

    async def scenario() -> Status:
        dispatcher = _dispatcher(client, tiny_site.root, transcripts=transcripts)
        dispatcher.status.subscribe(lambda status: statuses.append(status.kind))
        dispatcher.on_style_change(
            StyleChange(
                selector=".card",
                property="background-color",
                new_value="red",
                element_markup='<div class="card"></div>',
                old_value="blue",
            ),
            MODEL,
        )
        await dispatcher.wait_idle()
        return dispatcher.status.value

    final = _run(scenario)

    assert final == Status.succeeded("Style applied")
    assert statuses == [StatusKind.ANALYZING, StatusKind.PERSISTING, StatusKind.SUCCEEDED]
    assert tiny_site.read("style.css") == ".card { background-color: red; }\n"
    logs = list((tiny_site.logs_root / "operations").glob("operation__style__*.json"))
    assert len(logs) == 1
    entry = load_transcript(logs[0])
    assert entry.files_modified == ["style.css"]
    assert entry.outcome["tool_calls_executed"] == 2


def test_superseded_run_resolves_idle_without_callback(tiny_site) -> None:
    client = _ScriptedClient(
        [
            _text("never delivered"),
            _tools(_call("c1", "write_file", path="about.html", content="<p>About</p>")),
            _text("Done"),
        ],
        holds={0: 5.0},
    )
    statuses: list[StatusKind] = []
    completions: list[str] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.status.subscribe(lambda status: statuses.append(status.kind))
        dispatcher.on_freeform_edit(
            FreeformEdit(prompt="first", selector="h1"), MODEL, on_complete=lambda s: completions.append("first")
        )
        await asyncio.sleep(0.05)
        dispatcher.on_freeform_edit(
            FreeformEdit(prompt="second", selector="h1"), MODEL, on_complete=lambda s: completions.append("second")
        )
        await dispatcher.wait_idle()

    _run(scenario)

    assert statuses == [
        StatusKind.ANALYZING,
        StatusKind.IDLE,
        StatusKind.ANALYZING,
        StatusKind.PERSISTING,
        StatusKind.SUCCEEDED,
    ]
    assert completions == ["second"]
    assert (tiny_site.root / "about.html").exists()


def test_freeform_cancels_pending_debounce(tiny_site) -> None:
    client = _ScriptedClient([_tools(_call("c1", "list_files")), _text("Done")])
    completions: list[str] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.on_text_change(
            TextChange(selector="h1", old_text="Hello", new_text="Hi"),
            MODEL,
            on_complete=lambda s: completions.append("text"),
        )
        dispatcher.on_freeform_edit(
            FreeformEdit(prompt="Center the title", selector="h1"),
            MODEL,
            on_complete=lambda s: completions.append("freeform"),
        )
        await dispatcher.wait_idle()

    _run(scenario)

    assert completions == ["freeform"]
    assert client.calls == 2
    assert "Center the title" in client.prompts[0]


def test_model_without_tools_fails_immediately(tiny_site) -> None:
    client = _ScriptedClient([_text("unused")])
    completions: list[Status] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.on_image_change(
            ImageChange(selector="img.hero", new_src="new.png"),
            ChatModel(id="plain", supports_tool_calls=False),
            on_complete=completions.append,
        )
        await dispatcher.wait_idle()

    _run(scenario)

    assert client.calls == 0
    assert completions[0].kind is StatusKind.FAILED
    assert "does not support tool calls" in (completions[0].message or "")


def test_narrative_only_model_reports_no_files_modified(tiny_site) -> None:
    client = _ScriptedClient([_text("You should change the colour to red.")])
    completions: list[Status] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.on_freeform_edit(FreeformEdit(prompt="Make it red", selector="h1"), MODEL, completions.append)
        await dispatcher.wait_idle()

    _run(scenario)

    assert completions == [Status.failed("No files modified. Try rephrasing your request.")]


def test_exhausted_run_is_a_qualified_success(tiny_site) -> None:
    client = _ScriptedClient([_tools(_call("c1", "read_file", path="index.html"))])
    completions: list[Status] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.on_text_change(
            TextChange(selector="h1", old_text="Hello", new_text="Hi"), MODEL, completions.append
        )
        await dispatcher.wait_idle()

    _run(scenario)

    assert client.calls == FAST.max_turns
    assert completions == [Status.succeeded("Text updated (max turns reached; changes may be incomplete)")]


def test_multi_element_edit_reloads_preview(tiny_site) -> None:
    client = _ScriptedClient(
        [
            _tools(
                _call(
                    "c1",
                    "patch_file",
                    path="index.html",
                    old_content='<h1 class="title">',
                    new_content='<h1 class="title bold">',
                )
            ),
            _text("Done"),
        ]
    )
    renderer = _RecordingRenderer()
    completions: list[Status] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root, renderer=renderer)
        dispatcher.on_multi_element_edit(
            MultiElementEdit(
                prompt="Make them bold",
                elements=[SelectedElement("h1.title", "<h1>"), SelectedElement("img.hero", "<img>")],
            ),
            MODEL,
            completions.append,
        )
        await dispatcher.wait_idle()

    _run(scenario)

    assert renderer.events == [("reload",)]
    assert completions == [Status.succeeded("2 elements updated")]
    assert 'class="title bold"' in tiny_site.read("index.html")


def test_stream_failure_becomes_failed_status(tiny_site) -> None:
    client = _ScriptedClient([[StreamError("Rate limit exceeded. Please try again later.")]])
    completions: list[Status] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.on_freeform_edit(FreeformEdit(prompt="x", selector="h1"), MODEL, completions.append)
        await dispatcher.wait_idle()

    _run(scenario)

    assert completions == [Status.failed("Rate limit exceeded. Please try again later.")]


def test_cancel_publishes_idle_and_skips_callbacks(tiny_site) -> None:
    client = _ScriptedClient([_text("slow")], holds={0: 5.0, 1: 5.0})
    completions: list[Status] = []

    async def scenario() -> Status:
        dispatcher = _dispatcher(client, tiny_site.root)
        dispatcher.on_freeform_edit(FreeformEdit(prompt="x", selector="h1"), MODEL, completions.append)
        dispatcher.on_style_change(StyleChange(selector="h1", property="color", new_value="red"), MODEL, completions.append)
        await asyncio.sleep(0.05)
        dispatcher.cancel()
        dispatcher.cancel()
        await dispatcher.aclose()
        return dispatcher.status.value

    final = _run(scenario)

    assert final == Status.idle()
    assert completions == []


def test_async_and_failing_renderers_do_not_block_persistence(tiny_site) -> None:
    applied: list[str] = []

    class _AsyncRenderer(LiveRenderer):
        async def apply_style(self, selector: str, property: str, value: str) -> None:
            applied.append(value)

        def apply_text(self, selector: str, text: str) -> None:
            raise RuntimeError("web view gone")

    client = _ScriptedClient(
        [_tools(_call("c1", "list_files")), _text("Done"), _tools(_call("c2", "list_files")), _text("Done")]
    )
    completions: list[Status] = []

    async def scenario() -> None:
        dispatcher = _dispatcher(client, tiny_site.root, renderer=_AsyncRenderer())
        dispatcher.on_style_change(StyleChange(selector="h1", property="color", new_value="red"), MODEL)
        await dispatcher.wait_idle()
        dispatcher.on_text_change(TextChange(selector="h1", old_text="Hello", new_text="Hi"), MODEL, completions.append)
        await dispatcher.wait_idle()

    _run(scenario)

    assert applied == ["red"]
    assert completions == [Status.succeeded("Text updated")]
