"""
Tool runtime: the boundary between the agent loop and actual tool code.

The processor only sees `execute(name, args, timeout_ms) -> str`. Failures
are raised as ToolExecutionError subclasses and turned into failed results
one level up.
"""

from __future__ import annotations

import abc as _abc
import asyncio as _asyncio
import logging as _logging
import typing as _typing

import sigrun.api.types as api_types
import sigrun.tools.base as base
import sigrun.tools.registry as registry

_logger = _logging.getLogger(__name__)


class ToolRuntime(_abc.ABC):
    """Executes tools by name on behalf of the agent loop."""

    @_abc.abstractmethod
    async def execute(
        self,
        name: str,
        args: dict[str, _typing.Any],
        timeout_ms: int,
    ) -> str:
        """
        Run a tool and return its text output.

        Raises:
            ToolNotFoundError: Unknown tool name
            ToolTimeoutError: The call did not finish within timeout_ms
            ToolExecutionError: The tool reported or raised a failure
        """
        ...

    def tool_schemas(self) -> list[api_types.ToolSchema]:
        """Schemas to advertise to the model. Default: none."""
        return []


class RegistryToolRuntime(ToolRuntime):
    """Runtime backed by a ToolRegistry of Tool instances."""

    def __init__(self, tool_registry: registry.ToolRegistry | None = None) -> None:
        if tool_registry is None:
            tool_registry = registry.create_default_registry()
        self._registry = tool_registry

    @property
    def tool_registry(self) -> registry.ToolRegistry:
        return self._registry

    def tool_schemas(self) -> list[api_types.ToolSchema]:
        return self._registry.schemas()

    async def execute(
        self,
        name: str,
        args: dict[str, _typing.Any],
        timeout_ms: int,
    ) -> str:
        tool = self._registry.require(name)
        missing = tool.missing_arguments(args)
        if missing:
            raise base.ToolExecutionError(f"Missing required argument(s): {', '.join(missing)}")
        try:
            result = await _asyncio.wait_for(tool.execute(args), timeout=timeout_ms / 1000)
        except TimeoutError as e:
            raise base.ToolTimeoutError(f"Tool '{name}' timed out after {timeout_ms}ms") from e
        except base.ToolExecutionError:
            raise
        except Exception as e:
            _logger.debug("Tool %s raised", name, exc_info=True)
            raise base.ToolExecutionError(f"{type(e).__name__}: {e}") from e

        if not result.success:
            raise base.ToolExecutionError(result.error or f"Tool '{name}' failed")
        return result.output
