"""
Schemas and confirmation wording for the state-mutating ("breaking") tools.

Sigrun does not implement file or shell tools itself. Hosts that register
them advertise these schemas, and the processor uses the argument fields
below to tell the user what a call would do before it runs.
"""

from __future__ import annotations

import typing as _typing

import sigrun.api.types as api_types

CONFIRMATION_TEMPLATES: dict[str, str] = {
    "create_file": "• Create a new file at: {FilePath}",
    "update_file": "• Update the file at: {FilePath}",
    "create_directory": "• Create a new directory at: {DirectoryPath}",
    "run_command": "• Run the command: {CommandLine} in {Cwd}",
}
"""Description line per breaking tool, formatted with the call's arguments."""

UNKNOWN_TOOL_TEMPLATE = "• Run the tool: {name}"


class _MissingAsBlank(dict):  # type: ignore[type-arg]
    def __missing__(self, key: str) -> str:
        return ""


BREAKING_TOOL_SCHEMAS: dict[str, api_types.ToolSchema] = {
    "create_file": api_types.ToolSchema(
        name="create_file",
        description="Create a new file with the given content.",
        parameters={
            "FilePath": {"type": "string", "description": "Absolute path of the new file"},
            "Content": {"type": "string", "description": "Full file content"},
        },
        required=["FilePath", "Content"],
    ),
    "update_file": api_types.ToolSchema(
        name="update_file",
        description="Replace the content of an existing file.",
        parameters={
            "FilePath": {"type": "string", "description": "Absolute path of the file"},
            "Content": {"type": "string", "description": "New file content"},
        },
        required=["FilePath", "Content"],
    ),
    "create_directory": api_types.ToolSchema(
        name="create_directory",
        description="Create a directory, including missing parents.",
        parameters={
            "DirectoryPath": {"type": "string", "description": "Absolute directory path"},
        },
        required=["DirectoryPath"],
    ),
    "run_command": api_types.ToolSchema(
        name="run_command",
        description="Run a shell command in the given working directory.",
        parameters={
            "CommandLine": {"type": "string", "description": "Command line to execute"},
            "Cwd": {"type": "string", "description": "Working directory"},
        },
        required=["CommandLine", "Cwd"],
    ),
}


def with_breaking_schemas(
    schemas: _typing.Sequence[api_types.ToolSchema],
    breaking_tools: _typing.Iterable[str],
) -> list[api_types.ToolSchema]:
    """
    `schemas` plus the declared schema of every breaking tool not already in it.

    Names without a declared schema are skipped.
    """
    merged = list(schemas)
    present = {s.name for s in merged}
    for name in breaking_tools:
        if name in BREAKING_TOOL_SCHEMAS and name not in present:
            merged.append(BREAKING_TOOL_SCHEMAS[name])
            present.add(name)
    return merged


def describe_call(name: str, arguments: dict[str, _typing.Any]) -> str:
    """One human-readable line describing what a breaking call would do."""
    template = CONFIRMATION_TEMPLATES.get(name)
    if template is None:
        return UNKNOWN_TOOL_TEMPLATE.format(name=name)
    return template.format_map(_MissingAsBlank(arguments))
