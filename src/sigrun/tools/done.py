"""
The `done` tool: the model's way of ending a task with a summary.
"""

from __future__ import annotations

import typing as _typing

import sigrun.constants as _constants
import sigrun.tools.base as base


class DoneTool(base.Tool):
    """Ends the agent loop. The summary becomes the final answer."""

    name = _constants.DONE_TOOL_NAME
    description = (
        "Signal that you have finished working on the user's request. "
        "Provide a summary of what was accomplished; it is shown to the user "
        "as your final answer."
    )
    parameters = {
        "summary": {
            "type": "string",
            "description": "Summary of what was accomplished",
        },
    }
    required = ("summary",)

    async def execute(self, args: dict[str, _typing.Any]) -> base.ToolResult:
        summary = args.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            return base.ToolResult(success=False, output="", error="No summary provided")
        return base.ToolResult(success=True, output=f"Task completed: {summary}")
