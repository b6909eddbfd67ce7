"""
System prompt for the agent loop.

The prompt names the terminal `done` tool explicitly; the loop only ends on
a plain answer or a successful `done` call.
"""

import typing as _typing

import sigrun.constants as _constants

if _typing.TYPE_CHECKING:
    import sigrun.api.types as _api_types

_SYSTEM_PROMPT_INTRO = """\
You are Sigrun, an AI coding assistant working inside the user's project.

You help users with programming tasks by calling the tools available to you and
reporting what you found or changed.
"""

_GUIDELINES = """\
When the user asks you to perform a task:
1. Use the appropriate tools to accomplish it
2. Explain what you're doing
3. When the task is finished, call the `{done}` tool with a short summary

Tools that create or modify files or run commands need the user's permission.
If permission is denied, do not retry the same operation.
"""


def _format_tool_list(tool_schemas: "_typing.Sequence[_api_types.ToolSchema]") -> str:
    if not tool_schemas:
        return "You have no tools available."
    lines = ["You have access to the following tools:"]
    for schema in sorted(tool_schemas, key=lambda s: s.name):
        lines.append(f"- {schema.name}: {schema.description}")
    return "\n".join(lines)


def get_system_prompt(
    tool_schemas: "_typing.Sequence[_api_types.ToolSchema]" = (),
) -> str:
    """Generate the default system prompt listing the advertised tools."""
    guidelines = _GUIDELINES.format(done=_constants.DONE_TOOL_NAME)
    return f"{_SYSTEM_PROMPT_INTRO}\n{_format_tool_list(tool_schemas)}\n\n{guidelines}"
