"""
Name-to-tool lookup used by RegistryToolRuntime.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import sigrun.api.types as api_types
import sigrun.tools.base as base
import sigrun.tools.done as done

_logger = _logging.getLogger(__name__)


class ToolRegistry:
    """Holds Tool instances by name. Names are case-sensitive and unique."""

    def __init__(self, tools: _typing.Iterable[base.Tool] = ()) -> None:
        self._tools: dict[str, base.Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: base.Tool) -> None:
        """
        Add a tool.

        Raises:
            ValueError: The tool has no name, or the name is taken
        """
        if not tool.name:
            raise ValueError(f"{tool!r} has no name")
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        _logger.debug("Registered tool %s", tool.name)

    def get(self, name: str) -> base.Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> base.Tool:
        """
        Look up a tool for dispatch.

        Raises:
            ToolNotFoundError: No tool has that name
        """
        try:
            return self._tools[name]
        except KeyError:
            known = ", ".join(self.names()) or "(none)"
            raise base.ToolNotFoundError(f"Unknown tool: {name}. Available: {known}") from None

    def names(self) -> list[str]:
        return sorted(self._tools)

    def schemas(self) -> list[api_types.ToolSchema]:
        """Schemas to advertise to the model, in name order."""
        return [self._tools[name].to_schema() for name in self.names()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def create_default_registry(*extra: base.Tool) -> ToolRegistry:
    """
    Registry with the built-in `done` tool plus any `extra` tools.

    Hosts supply their own file, search and shell tools this way.
    """
    return ToolRegistry([done.DoneTool(), *extra])
