"""
Tool system for Sigrun.

Tools are the mechanism by which the model interacts with the environment.
Only the terminal `done` tool ships built in; breaking-tool schemas are
declared for hosts that provide file and shell tools.
"""

from sigrun.tools.base import (
    Tool,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResult,
    ToolTimeoutError,
)
from sigrun.tools.definitions import (
    BREAKING_TOOL_SCHEMAS,
    CONFIRMATION_TEMPLATES,
    describe_call,
    with_breaking_schemas,
)
from sigrun.tools.done import DoneTool
from sigrun.tools.metrics import MetricsCollector, ToolMetrics
from sigrun.tools.registry import ToolRegistry, create_default_registry
from sigrun.tools.runtime import RegistryToolRuntime, ToolRuntime

__all__ = [
    "BREAKING_TOOL_SCHEMAS",
    "CONFIRMATION_TEMPLATES",
    "DoneTool",
    "MetricsCollector",
    "RegistryToolRuntime",
    "Tool",
    "ToolExecutionError",
    "ToolMetrics",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "ToolRuntime",
    "ToolTimeoutError",
    "create_default_registry",
    "describe_call",
    "with_breaking_schemas",
]
