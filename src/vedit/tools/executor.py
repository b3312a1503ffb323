"""Sandboxed execution of file tools against project directories."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Mapping

from ..conversation import ToolCall, ToolOutcome
from .catalog import (
    DeleteFileArgs,
    ListFilesArgs,
    PatchFileArgs,
    ReadFileArgs,
    RenameFileArgs,
    ToolArgumentError,
    ToolArguments,
    WriteFileArgs,
    is_mutating,
    parse_tool_arguments,
)

__all__ = ["ProjectToolExecutor", "ToolExecutionError", "ToolExecutor"]

LOGGER = logging.getLogger(__name__)
TELEMETRY_LOGGER = logging.getLogger("vedit.telemetry")

_DEFAULT_MAX_FILE_BYTES = 1_000_000
_MAX_OUTPUT_PREVIEW = 200


class ToolExecutionError(RuntimeError):
    """Raised inside a tool handler when the operation cannot be performed."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ToolExecutor:
    """Boundary that performs one tool call for a project.

    Implementations must be safe to call repeatedly with the same arguments;
    the edit loop never deduplicates calls.
    """

    async def execute(self, project_id: str, call: ToolCall) -> ToolOutcome:
        raise NotImplementedError("Subclasses must implement execute().")


def _emit_tool_event(event: str, **fields: Any) -> None:
    """Log a structured telemetry event for a tool execution."""
    payload: dict[str, Any] = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = value if isinstance(value, (str, int, float, bool)) or value is None else str(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


class ProjectToolExecutor(ToolExecutor):
    """Execute file tools inside registered project roots.

    Paths supplied by the model are always interpreted relative to the project
    root; absolute paths and paths escaping the root are rejected. Mutating
    calls for the same project are serialised.
    """

    def __init__(
        self,
        projects: Mapping[str, Path | str],
        *,
        max_file_bytes: int = _DEFAULT_MAX_FILE_BYTES,
    ) -> None:
        self._projects = {key: Path(value).resolve() for key, value in projects.items()}
        self._max_file_bytes = max_file_bytes
        self._locks: dict[str, asyncio.Lock] = {}
        self._handlers: dict[type, Callable[[Path, Any], ToolOutcome]] = {
            ReadFileArgs: self._read_file,
            WriteFileArgs: self._write_file,
            PatchFileArgs: self._patch_file,
            DeleteFileArgs: self._delete_file,
            RenameFileArgs: self._rename_file,
            ListFilesArgs: self._list_files,
        }

    def register_project(self, project_id: str, root: Path | str) -> None:
        self._projects[project_id] = Path(root).resolve()

    def project_root(self, project_id: str) -> Path:
        try:
            return self._projects[project_id]
        except KeyError as error:
            raise ToolExecutionError(f"Unknown project: {project_id}") from error

    async def execute(self, project_id: str, call: ToolCall) -> ToolOutcome:
        try:
            root = self.project_root(project_id)
            arguments = parse_tool_arguments(call)
        except (ToolExecutionError, ToolArgumentError) as error:
            outcome = ToolOutcome.failure(str(error))
            self._record(project_id, call, outcome)
            return outcome

        handler = self._handlers[type(arguments)]
        if is_mutating(call.name):
            async with self._lock_for(project_id):
                outcome = await asyncio.to_thread(self._run_handler, handler, root, arguments)
        else:
            outcome = await asyncio.to_thread(self._run_handler, handler, root, arguments)
        self._record(project_id, call, outcome)
        return outcome

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    @staticmethod
    def _run_handler(
        handler: Callable[[Path, Any], ToolOutcome],
        root: Path,
        arguments: ToolArguments,
    ) -> ToolOutcome:
        try:
            return handler(root, arguments)
        except ToolExecutionError as error:
            return ToolOutcome.failure(str(error))
        except UnicodeDecodeError:
            return ToolOutcome.failure("File is not valid UTF-8 text.")
        except OSError as error:
            return ToolOutcome.failure(f"Filesystem error: {error.strerror or error}")

    @staticmethod
    def _record(project_id: str, call: ToolCall, outcome: ToolOutcome) -> None:
        _emit_tool_event(
            "tool_executed",
            project=project_id,
            tool=call.name,
            call_id=call.id,
            succeeded=outcome.succeeded,
            error=outcome.error,
            paths=",".join(outcome.touched_paths) or None,
            output_preview=outcome.output[:_MAX_OUTPUT_PREVIEW] if outcome.output else None,
        )
        if not outcome.succeeded:
            LOGGER.debug("Tool %s (%s) failed: %s", call.name, call.id, outcome.error)

    # ------------------------------------------------------------------
    # Path handling

    @staticmethod
    def resolve_path(root: Path, relative: str, *, allow_root: bool = False) -> Path:
        """Resolve ``relative`` inside ``root`` or raise :class:`ToolExecutionError`."""
        cleaned = relative.strip().replace("\\", "/")
        if cleaned in {"", "."}:
            if allow_root:
                return root
            raise ToolExecutionError("A file path is required.")
        if cleaned.startswith("/") or PurePosixPath(cleaned).is_absolute() or ":" in cleaned.split("/")[0]:
            raise ToolExecutionError(f"Absolute paths are not allowed: {relative}")
        candidate = (root / cleaned).resolve()
        try:
            candidate.relative_to(root)
        except ValueError as error:
            raise ToolExecutionError(
                f"Path escapes the project directory: {relative}",
                details={"path": relative},
            ) from error
        return candidate

    @staticmethod
    def _display(root: Path, path: Path) -> str:
        return path.relative_to(root).as_posix()

    # ------------------------------------------------------------------
    # Handlers

    def _read_file(self, root: Path, args: ReadFileArgs) -> ToolOutcome:
        path = self.resolve_path(root, args.path)
        if not path.is_file():
            raise ToolExecutionError(f"File not found: {args.path}")
        return ToolOutcome.ok(path.read_text(encoding="utf-8"))

    def _write_file(self, root: Path, args: WriteFileArgs) -> ToolOutcome:
        path = self.resolve_path(root, args.path)
        if len(args.content.encode("utf-8")) > self._max_file_bytes:
            raise ToolExecutionError(f"Content exceeds the {self._max_file_bytes} byte limit.")
        if path.is_dir():
            raise ToolExecutionError(f"Path is a directory: {args.path}")
        existed = path.exists()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(args.content, encoding="utf-8")
        display = self._display(root, path)
        verb = "updated" if existed else "created"
        return ToolOutcome.ok(f"File {verb} successfully: {display}", touched_paths=[display])

    def _patch_file(self, root: Path, args: PatchFileArgs) -> ToolOutcome:
        path = self.resolve_path(root, args.path)
        if not path.is_file():
            raise ToolExecutionError(f"File not found: {args.path}")
        original = path.read_text(encoding="utf-8")
        occurrences = original.count(args.old_content)
        if occurrences == 0:
            raise ToolExecutionError(
                f"old_content not found in {args.path}. Read the file and retry with an exact snippet."
            )
        updated = original.replace(args.old_content, args.new_content, 1)
        if len(updated.encode("utf-8")) > self._max_file_bytes:
            raise ToolExecutionError(f"Patched file exceeds the {self._max_file_bytes} byte limit.")
        path.write_text(updated, encoding="utf-8")
        display = self._display(root, path)
        message = f"Patched {display}"
        if occurrences > 1:
            message += f" (replaced the first of {occurrences} matches)"
        return ToolOutcome.ok(message, touched_paths=[display])

    def _delete_file(self, root: Path, args: DeleteFileArgs) -> ToolOutcome:
        path = self.resolve_path(root, args.path)
        if path.is_dir():
            raise ToolExecutionError(f"Refusing to delete a directory: {args.path}")
        if not path.exists():
            raise ToolExecutionError(f"File not found: {args.path}")
        path.unlink()
        display = self._display(root, path)
        return ToolOutcome.ok(f"File deleted successfully: {display}", touched_paths=[display])

    def _rename_file(self, root: Path, args: RenameFileArgs) -> ToolOutcome:
        source = self.resolve_path(root, args.old_path)
        destination = self.resolve_path(root, args.new_path)
        if not source.exists():
            raise ToolExecutionError(f"File not found: {args.old_path}")
        if destination.exists():
            raise ToolExecutionError(f"Destination already exists: {args.new_path}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(os.fspath(source), os.fspath(destination))
        old_display = self._display(root, source)
        new_display = self._display(root, destination)
        return ToolOutcome.ok(
            f"File renamed from '{old_display}' to '{new_display}'",
            touched_paths=[old_display, new_display],
        )

    def _list_files(self, root: Path, args: ListFilesArgs) -> ToolOutcome:
        directory = self.resolve_path(root, args.path, allow_root=True)
        if not directory.is_dir():
            raise ToolExecutionError(f"Directory not found: {args.path}")
        lines: list[str] = []
        self._walk(directory, lines, indent="")
        return ToolOutcome.ok("\n".join(lines) if lines else "Directory is empty")

    def _walk(self, directory: Path, lines: list[str], *, indent: str) -> None:
        entries = sorted(directory.iterdir(), key=lambda entry: (not entry.is_dir(), entry.name.lower()))
        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                lines.append(f"{indent}{entry.name}/")
                self._walk(entry, lines, indent=indent + "  ")
            else:
                lines.append(f"{indent}{entry.name}")
