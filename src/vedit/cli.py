"""CLI commands for running visual edits against a configured project."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    EditorSettings,
    ModelSettings,
    copy_config_template,
    load_config,
    resolve_logs_root,
    resolve_project_root,
    write_config,
)
from .conversation import ConversationMessage, Role, ToolCall
from .dispatcher import EditDispatcher
from .edits import (
    EditRequest,
    FreeformEdit,
    ImageChange,
    MultiElementEdit,
    SelectedElement,
    StyleChange,
    TextChange,
)
from .engine.transcript import TranscriptStore, load_transcript
from .models import (
    ChatModel,
    ChatStreamClient,
    Completed,
    ContentDelta,
    OpenAICompatibleClient,
    StreamEvent,
    ToolCallBatch,
)
from .render import ScriptRenderer
from .status import Status, StatusKind
from .tools import ProjectToolExecutor, ToolName

APP_HELP = "Visual edit agent CLI entry point."
LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


class _OfflineChatClient(ChatStreamClient):
    """Local stub that inspects the project once and then finishes without edits."""

    async def stream(
        self,
        model: ChatModel,
        messages: Sequence[ConversationMessage],
        tools: Sequence[Mapping[str, Any]] = (),
    ) -> AsyncIterator[StreamEvent]:
        if not any(message.role is Role.TOOL for message in messages):
            yield ToolCallBatch((ToolCall(id="offline-1", name=ToolName.LIST_FILES.value, arguments="{}"),))
        else:
            yield ContentDelta("Offline stub inspected the project and made no changes.")
        yield Completed()


def _build_client(models: ModelSettings, *, use_remote: bool) -> ChatStreamClient:
    """Select either the OpenAI-compatible streaming client or the offline stub."""
    if use_remote and not models.offline:
        typer.echo(f"Using streaming client ({models.default}).")
        client_kwargs: Dict[str, Any] = {"timeout": models.timeout, "temperature": models.temperature}
        if models.base_url:
            client_kwargs["base_url"] = models.base_url
        if models.api_key:
            client_kwargs["api_key"] = models.api_key
        try:
            return OpenAICompatibleClient(**client_kwargs)
        except ValueError as error:
            message = str(error)
            if "api key" in message.lower():
                typer.echo(
                    "No API key given. Set VEDIT_API_KEY or OPENAI_API_KEY, "
                    "or re-run with --no-use-remote to use the offline stub."
                )
            else:
                typer.echo(f"Failed to initialise streaming client: {error}")
            raise typer.Exit(code=1)

    if use_remote and models.offline:
        typer.echo(f"Model '{models.default}' is offline-only; using offline stub client.")
    else:
        typer.echo("Using offline stub client.")
    return _OfflineChatClient()


def _load_or_exit(config_path: Path) -> Dict[str, Any]:
    try:
        return load_config(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _parse_element(value: str) -> SelectedElement:
    """Split ``SELECTOR=MARKUP``; markup is taken from the first ``=<`` when present."""
    marker = value.find("=<")
    if marker < 0:
        marker = value.find("=")
    if marker < 0:
        return SelectedElement(selector=value.strip())
    selector, markup = value[:marker], value[marker + 1 :]
    if not selector.strip():
        raise typer.BadParameter(f"Element '{value}' is missing a selector.")
    return SelectedElement(selector=selector.strip(), markup=markup)


def _echo_status(status: Status) -> None:
    if status.message:
        typer.echo(f"[{status.kind.value}] {status.message}")
    else:
        typer.echo(f"[{status.kind.value}]")


async def _dispatch_once(
    dispatcher: EditDispatcher,
    client: ChatStreamClient,
    request: EditRequest,
    model: ChatModel,
) -> Status:
    completed: List[Status] = []
    unsubscribe = dispatcher.status.subscribe(_echo_status)
    try:
        dispatcher.submit(request, model, on_complete=completed.append)
        await dispatcher.wait_idle()
    finally:
        unsubscribe()
        await dispatcher.aclose()
        await client.aclose()
    return completed[-1] if completed else dispatcher.status.value


def _run_edit(
    config: str,
    request: EditRequest,
    *,
    model_id: Optional[str],
    use_remote: bool,
) -> None:
    config_path = Path(config)
    config_data = _load_or_exit(config_path)
    models = ModelSettings.from_config(config_data)
    # One-shot CLI runs have no burst of inspector events to coalesce.
    settings = dataclasses.replace(EditorSettings.from_config(config_data), debounce_seconds=0.0)

    project_root = resolve_project_root(config_data, config_path)
    if not project_root.is_dir():
        typer.echo(f"Project directory not found: {project_root}")
        raise typer.Exit(code=1)
    project_cfg = config_data.get("project") or {}
    project_id = str(project_cfg.get("id") or "site") if isinstance(project_cfg, dict) else "site"

    client = _build_client(models, use_remote=use_remote)
    model = models.resolve_model(model_id)
    executor = ProjectToolExecutor({project_id: project_root})
    renderer = ScriptRenderer(lambda script: LOGGER.debug("Preview script:\n%s", script))
    dispatcher = EditDispatcher(
        client,
        executor,
        project_id,
        renderer=renderer,
        settings=settings,
        transcripts=TranscriptStore(resolve_logs_root(config_data, config_path)),
    )

    typer.echo(f"Editing {project_root} with {model.display_name}.")
    final = asyncio.run(_dispatch_once(dispatcher, client, request, model))
    typer.echo(f"Final status: {final}")
    if final.kind is not StatusKind.SUCCEEDED:
        raise typer.Exit(code=1)


_CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_NAME,
    "--config",
    "-c",
    help="Path to the editor configuration file.",
)
_MODEL_OPTION = typer.Option(None, "--model", "-m", help="Model id to use instead of the configured default.")
_REMOTE_OPTION = typer.Option(
    True,
    "--use-remote/--no-use-remote",
    help="Call the configured model endpoint instead of the offline stub.",
)
_MARKUP_OPTION = typer.Option("", "--markup", help="Outer HTML of the selected element.")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level for diagnostics."),
) -> None:
    """Configure logging before running a command."""
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@app.command()
def init(
    config: str = _CONFIG_OPTION,
    project_root: str = typer.Option(".", "--project-root", "-p", help="Directory holding the edited site."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Default model id."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists at {config_path}; pass --force to overwrite.")
        raise typer.Exit(code=1)
    config_data = copy_config_template()
    config_data["project"]["root"] = project_root
    if model:
        config_data["models"]["default"] = model.strip()
    write_config(config_path, config_data)
    typer.echo(f"Wrote configuration to {config_path}")


@app.command()
def style(
    selector: str = typer.Argument(..., help="CSS selector of the edited element."),
    property: str = typer.Argument(..., help="CSS property to change."),
    value: str = typer.Argument(..., help="New property value."),
    old_value: Optional[str] = typer.Option(None, "--old-value", help="Current property value, when known."),
    markup: str = _MARKUP_OPTION,
    config: str = _CONFIG_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    use_remote: bool = _REMOTE_OPTION,
) -> None:
    """Persist a CSS property change."""
    request = StyleChange(
        selector=selector,
        property=property,
        new_value=value,
        element_markup=markup,
        old_value=old_value,
    )
    _run_edit(config, request, model_id=model, use_remote=use_remote)


@app.command()
def text(
    selector: str = typer.Argument(..., help="CSS selector of the edited element."),
    new_text: str = typer.Argument(..., help="Replacement text."),
    old_text: str = typer.Option("", "--old-text", help="Text currently shown by the element."),
    markup: str = _MARKUP_OPTION,
    config: str = _CONFIG_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    use_remote: bool = _REMOTE_OPTION,
) -> None:
    """Persist a text change."""
    request = TextChange(selector=selector, old_text=old_text, new_text=new_text, element_markup=markup)
    _run_edit(config, request, model_id=model, use_remote=use_remote)


@app.command()
def image(
    selector: str = typer.Argument(..., help="CSS selector of the <img> element."),
    src: str = typer.Argument(..., help="New image source."),
    old_src: Optional[str] = typer.Option(None, "--old-src", help="Current image source, when known."),
    markup: str = _MARKUP_OPTION,
    config: str = _CONFIG_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    use_remote: bool = _REMOTE_OPTION,
) -> None:
    """Persist an image source change."""
    request = ImageChange(selector=selector, new_src=src, element_markup=markup, old_src=old_src)
    _run_edit(config, request, model_id=model, use_remote=use_remote)


@app.command()
def prompt(
    instruction: str = typer.Argument(..., help="Natural-language description of the change."),
    selector: Optional[str] = typer.Option(None, "--selector", "-s", help="Target element for a single edit."),
    markup: str = _MARKUP_OPTION,
    element: List[str] = typer.Option(
        None,
        "--element",
        "-e",
        help="Selected element as SELECTOR=MARKUP (repeatable); switches to a multi-element edit.",
    ),
    config: str = _CONFIG_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    use_remote: bool = _REMOTE_OPTION,
) -> None:
    """Apply a freeform instruction to one element or to several selected elements."""
    if not instruction.strip():
        raise typer.BadParameter("Instruction must not be empty.")
    request: EditRequest
    if element:
        request = MultiElementEdit(prompt=instruction, elements=tuple(_parse_element(item) for item in element))
    elif selector:
        request = FreeformEdit(prompt=instruction, selector=selector, element_markup=markup)
    else:
        raise typer.BadParameter("Pass --selector for a single element or --element for several.")
    _run_edit(config, request, model_id=model, use_remote=use_remote)


@app.command()
def show_log(
    log_path: Path = typer.Argument(..., help="Path to a stored operation transcript."),
) -> None:
    """Summarise a stored operation transcript."""
    try:
        entry = load_transcript(log_path)
    except (OSError, ValueError) as error:
        typer.echo(f"Unable to read transcript {log_path}: {error}")
        raise typer.Exit(code=1)

    typer.echo(f"Transcript: {entry.path}")
    typer.echo(f"Kind: {entry.kind or 'unknown'}")
    typer.echo(f"Model: {entry.model_id or 'unknown'}")
    typer.echo(f"Status: {entry.status or 'unknown'}")
    calls = entry.tool_calls
    typer.echo(f"Tool calls: {len(calls)}")
    for call in calls:
        typer.echo(f"- {call}")
    files = entry.files_modified
    if files:
        typer.echo("Files modified:")
        for name in files:
            typer.echo(f"- {name}")
    else:
        typer.echo("No files modified.")


if __name__ == "__main__":
    app()
