"""
Type definitions for completion provider interactions.

These types provide a provider-agnostic interface for working with chat
completion responses. Conversation messages themselves stay plain dicts in
the OpenAI chat format so they can be stored and serialized as-is.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import json as _json
import typing as _typing


@_dataclasses.dataclass
class Usage:
    """Token usage information."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@_dataclasses.dataclass
class ToolCall:
    """A tool invocation requested by the model.

    `arguments` is kept as the raw serialized payload exactly as the model
    produced it; parsing happens only when the call is dispatched.
    """

    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> dict[str, _typing.Any]:
        """Parse the raw argument payload.

        Raises:
            ValueError: If the payload is not a JSON object.
        """
        raw = self.arguments.strip() or "{}"
        parsed = _json.loads(raw)  # JSONDecodeError is a ValueError
        if not isinstance(parsed, dict):
            raise ValueError(f"arguments must be a JSON object, got {type(parsed).__name__}")
        return parsed

    def to_message_format(self) -> dict[str, _typing.Any]:
        """Convert to the `tool_calls` entry of an assistant message."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_message_format(cls, data: dict[str, _typing.Any]) -> ToolCall:
        """Create from a `tool_calls` entry of an assistant message."""
        func = data.get("function") or {}
        arguments = func.get("arguments", "{}")
        if not isinstance(arguments, str):
            arguments = _json.dumps(arguments)
        return cls(
            id=data.get("id", ""),
            name=func.get("name", ""),
            arguments=arguments,
        )


@_dataclasses.dataclass
class ToolSchema:
    """Tool definition advertised to the model.

    `parameters` maps field name to its JSON-schema description;
    `required` lists the field names the model must supply.
    """

    name: str
    description: str
    parameters: dict[str, dict[str, _typing.Any]] = _dataclasses.field(default_factory=dict)
    required: list[str] = _dataclasses.field(default_factory=list)

    def to_openai_format(self) -> dict[str, _typing.Any]:
        """Convert to OpenAI function-tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": list(self.required),
                },
            },
        }


@_dataclasses.dataclass
class ToolCallFragment:
    """One streamed piece of a tool call.

    Fragments are keyed by the stream-provided `index`. Usually only the
    first fragment of a call carries its id and name.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@_dataclasses.dataclass
class StreamDelta:
    """One incremental chunk of a streaming completion."""

    content: str | None = None
    tool_call_fragments: list[ToolCallFragment] = _dataclasses.field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None


@_dataclasses.dataclass
class CompletionResponse:
    """Complete response from a non-streaming API call."""

    content: str
    tool_calls: list[ToolCall] = _dataclasses.field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage = _dataclasses.field(default_factory=Usage)
    id: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def to_message(self) -> dict[str, _typing.Any]:
        """Convert to an assistant-role history message."""
        message: dict[str, _typing.Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_message_format() for tc in self.tool_calls]
        return message
