"""Tool definitions offered to the model and typed parsing of their arguments."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..conversation import ToolCall

__all__ = [
    "MUTATING_TOOLS",
    "DeleteFileArgs",
    "ListFilesArgs",
    "PatchFileArgs",
    "ReadFileArgs",
    "RenameFileArgs",
    "ToolArgumentError",
    "ToolArguments",
    "ToolDefinition",
    "ToolName",
    "WriteFileArgs",
    "default_tool_catalog",
    "is_mutating",
    "parse_tool_arguments",
    "target_paths",
]


class ToolArgumentError(ValueError):
    """Raised when a tool call cannot be mapped onto a typed argument record."""


class ToolName(str, Enum):
    """Tool name space recognised by the edit loop."""

    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    PATCH_FILE = "patch_file"
    DELETE_FILE = "delete_file"
    RENAME_FILE = "rename_file"
    LIST_FILES = "list_files"


MUTATING_TOOLS = frozenset(
    {ToolName.WRITE_FILE, ToolName.PATCH_FILE, ToolName.DELETE_FILE, ToolName.RENAME_FILE}
)


def is_mutating(name: str | ToolName) -> bool:
    """Return True when ``name`` refers to a file-modifying tool."""
    try:
        return ToolName(name) in MUTATING_TOOLS
    except ValueError:
        return False


class ToolArgsModel(BaseModel):
    """Base record for tool arguments; unknown keys emitted by models are dropped."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class ReadFileArgs(ToolArgsModel):
    path: str = Field(
        min_length=1,
        description="Relative path of the file from the project root (e.g. 'index.html', 'css/style.css').",
    )


class WriteFileArgs(ToolArgsModel):
    path: str = Field(min_length=1, description="Relative path of the file from the project root.")
    content: str = Field(description="Complete new content of the file.")


class PatchFileArgs(ToolArgsModel):
    path: str = Field(min_length=1, description="Relative path of the file to patch.")
    old_content: str = Field(min_length=1, description="Exact text to find in the file.")
    new_content: str = Field(description="Text that replaces old_content.")


class DeleteFileArgs(ToolArgsModel):
    path: str = Field(min_length=1, description="Relative path of the file to delete.")


class RenameFileArgs(ToolArgsModel):
    old_path: str = Field(min_length=1, description="Current relative path of the file.")
    new_path: str = Field(min_length=1, description="New relative path of the file.")


class ListFilesArgs(ToolArgsModel):
    path: str = Field(default="", description="Relative directory to list. Use '' or '.' for the project root.")


ToolArguments = Union[ReadFileArgs, WriteFileArgs, PatchFileArgs, DeleteFileArgs, RenameFileArgs, ListFilesArgs]

_ARGUMENT_MODELS: Dict[ToolName, type[ToolArgsModel]] = {
    ToolName.READ_FILE: ReadFileArgs,
    ToolName.WRITE_FILE: WriteFileArgs,
    ToolName.PATCH_FILE: PatchFileArgs,
    ToolName.DELETE_FILE: DeleteFileArgs,
    ToolName.RENAME_FILE: RenameFileArgs,
    ToolName.LIST_FILES: ListFilesArgs,
}

_DESCRIPTIONS: Dict[ToolName, str] = {
    ToolName.READ_FILE: "Read the contents of a project file. Always read a file before patching it.",
    ToolName.WRITE_FILE: (
        "Create a file or overwrite it entirely. Prefer patch_file for small changes to existing files."
    ),
    ToolName.PATCH_FILE: (
        "Replace an exact snippet of an existing file with new text. Preferred for targeted edits."
    ),
    ToolName.DELETE_FILE: "Delete a file from the project.",
    ToolName.RENAME_FILE: "Rename or move a file inside the project.",
    ToolName.LIST_FILES: "List files and folders in a project directory.",
}


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Function-calling definition advertised to the model."""

    name: str
    description: str
    parameters: Mapping[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters),
            },
        }


def _parameters_schema(model: type[ToolArgsModel]) -> dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in (schema.get("properties") or {}).values():
        if isinstance(prop, dict):
            prop.pop("title", None)
    schema.setdefault("required", [])
    return schema


def default_tool_catalog() -> list[ToolDefinition]:
    """Return the file tools offered to the model, in a stable order."""
    return [
        ToolDefinition(name=name.value, description=_DESCRIPTIONS[name], parameters=_parameters_schema(model))
        for name, model in _ARGUMENT_MODELS.items()
    ]


def parse_tool_arguments(call: ToolCall) -> ToolArguments:
    """Validate ``call.arguments`` against the record registered for ``call.name``."""
    try:
        tool = ToolName(call.name)
    except ValueError as error:
        raise ToolArgumentError(f"Unknown tool: {call.name or '(empty)'}") from error

    raw = (call.arguments or "").strip() or "{}"
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise ToolArgumentError(f"Arguments for {tool.value} are not valid JSON: {error.msg}") from error
    if not isinstance(payload, dict):
        raise ToolArgumentError(f"Arguments for {tool.value} must be a JSON object.")

    model = _ARGUMENT_MODELS[tool]
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as error:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in item['loc']) or 'arguments'}: {item['msg']}"
            for item in error.errors()
        )
        raise ToolArgumentError(f"Invalid arguments for {tool.value}: {problems}") from error


def target_paths(arguments: ToolArguments) -> tuple[str, ...]:
    """Return the project paths a parsed call refers to."""
    if isinstance(arguments, RenameFileArgs):
        return (arguments.old_path, arguments.new_path)
    return (arguments.path,)
