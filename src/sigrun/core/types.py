"""
Core data types for Sigrun.

These are data transfer objects (DTOs) used across the loop components.
Conversation messages themselves stay plain dicts in chat format.
"""

import dataclasses as _dataclasses
import typing as _typing

import sigrun.api.types as api_types

Message = dict[str, _typing.Any]
"""A role-tagged chat message (`role`, `content`, `tool_calls`, `tool_call_id`)."""


@_dataclasses.dataclass
class ToolResult:
    """The resolution of exactly one ToolCall."""

    tool_call_id: str
    output: str
    success: bool = True

    def to_message(self) -> Message:
        """Format as a tool-role history message."""
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": self.output,
        }


@_dataclasses.dataclass
class HistorySummary:
    """Compressed stand-in for the older part of a conversation."""

    content: str
    file_references: list[str] = _dataclasses.field(default_factory=list)
    """File-path-like tokens found verbatim in the summarized messages."""

    summarized_count: int = 0
    """How many history messages this summary replaces."""

    fallback: bool = False
    """True when the provider failed and the statistical summary was used."""

    def to_message(self) -> Message:
        """Format as the synthetic system-role message placed in the payload."""
        content = f"Summary of earlier conversation:\n{self.content}"
        if self.file_references:
            content += "\n\nReferenced files:\n" + "\n".join(
                f"- {path}" for path in self.file_references
            )
        return {
            "role": "system",
            "content": content,
            "file_references": list(self.file_references),
        }


@_dataclasses.dataclass
class ToolCallDisplay:
    """Information about a tool call for display/logging purposes."""

    tool_name: str
    tool_input: dict[str, _typing.Any]
    tool_id: str
    requires_confirmation: bool = False


@_dataclasses.dataclass
class ToolResultDisplay:
    """Information about a tool result for display/logging purposes."""

    tool_name: str
    result: ToolResult


def tool_calls_of(message: Message) -> list[api_types.ToolCall]:
    """Parse the `tool_calls` of an assistant message into ToolCall objects."""
    return [api_types.ToolCall.from_message_format(tc) for tc in message.get("tool_calls") or []]
