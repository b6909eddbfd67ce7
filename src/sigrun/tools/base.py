"""
Tool contract and tool errors.

The agent loop never calls a Tool directly; it goes through a ToolRuntime
(see sigrun.tools.runtime), which turns a failed ToolResult into one of the
errors below.
"""

from __future__ import annotations

import abc as _abc
import dataclasses as _dataclasses
import typing as _typing

import sigrun.api.errors as api_errors
import sigrun.api.types as api_types


class ToolExecutionError(api_errors.SigrunError):
    """A tool failed. The processor records it as a failed result; the loop goes on."""

    pass


class ToolTimeoutError(ToolExecutionError):
    """A tool exceeded its dispatch timeout."""

    pass


class ToolNotFoundError(ToolExecutionError):
    """The runtime has no tool with the requested name."""

    pass


@_dataclasses.dataclass
class ToolResult:
    """What a Tool hands back: text output on success, an error message otherwise."""

    success: bool
    output: str
    error: str | None = None


class Tool(_abc.ABC):
    """
    A callable the model can request by name.

    Subclasses set `name`, `description` and `parameters` (the JSON schema
    properties of the arguments object), list mandatory argument names in
    `required`, and implement execute().
    """

    name: str = ""
    description: str = ""
    parameters: _typing.Mapping[str, _typing.Any] = {}
    required: tuple[str, ...] = ()

    @_abc.abstractmethod
    async def execute(self, args: dict[str, _typing.Any]) -> ToolResult: ...

    def missing_arguments(self, args: _typing.Mapping[str, _typing.Any]) -> list[str]:
        return [key for key in self.required if key not in args]

    def to_schema(self) -> api_types.ToolSchema:
        return api_types.ToolSchema(
            name=self.name,
            description=self.description,
            parameters=dict(self.parameters),
            required=list(self.required),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
