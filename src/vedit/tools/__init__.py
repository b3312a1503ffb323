"""File tools exposed to the model and the sandbox that executes them."""

from .catalog import (
    MUTATING_TOOLS,
    DeleteFileArgs,
    ListFilesArgs,
    PatchFileArgs,
    ReadFileArgs,
    RenameFileArgs,
    ToolArgumentError,
    ToolArguments,
    ToolDefinition,
    ToolName,
    WriteFileArgs,
    default_tool_catalog,
    is_mutating,
    parse_tool_arguments,
    target_paths,
)
from .executor import ProjectToolExecutor, ToolExecutionError, ToolExecutor

__all__ = [
    "MUTATING_TOOLS",
    "DeleteFileArgs",
    "ListFilesArgs",
    "PatchFileArgs",
    "ProjectToolExecutor",
    "ReadFileArgs",
    "RenameFileArgs",
    "ToolArgumentError",
    "ToolArguments",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolName",
    "WriteFileArgs",
    "default_tool_catalog",
    "is_mutating",
    "parse_tool_arguments",
    "target_paths",
]
