"""
Shared constants for Sigrun.

This module provides a single source of truth for default values
and fixed user-facing texts used across multiple modules.
"""

# Provider/Model defaults
DEFAULT_BASE_URL = "https://api.openai.com/v1"
"""Default OpenAI-compatible endpoint."""

DEFAULT_MODEL = "gpt-4o"
"""Default chat completion model."""

DEFAULT_TEMPERATURE = 0.8
"""Default sampling temperature for loop completions."""

DEFAULT_REQUEST_TIMEOUT_SECONDS = 120.0
"""Overall timeout for one completion round trip."""

# Loop control
DEFAULT_MAX_ITERATIONS = 10
"""Hard ceiling on RUNNING ticks per loop invocation."""

DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
"""Pause after a transient provider failure before the next tick."""

# Tool execution
DEFAULT_TOOL_TIMEOUT_MS = 30_000
"""Timeout for general tool dispatch."""

DEFAULT_DONE_TOOL_TIMEOUT_MS = 5_000
"""Timeout for the terminal done tool."""

DONE_TOOL_NAME = "done"
"""Tool whose successful result ends the loop."""

DEFAULT_BREAKING_TOOLS: tuple[str, ...] = (
    "create_file",
    "update_file",
    "create_directory",
    "run_command",
)
"""Tools that mutate files or run commands and need user confirmation."""

# History management
DEFAULT_MAX_HISTORY_LENGTH = 10
"""Stored history is truncated to about this many messages."""

DEFAULT_MAX_PAYLOAD_SIZE = 10_000
"""Estimated payload size (characters) that triggers summarization."""

DEFAULT_MAX_MESSAGES = 10
"""Message count that triggers summarization."""

DEFAULT_SUMMARY_MAX_TOKENS = 2000
"""Token budget for the summarization completion."""

DEFAULT_RECENT_EXCHANGES_KEPT = 2
"""Most recent exchanges (user message onward) never folded into a summary."""

# Fixed texts
PERMISSION_PLACEHOLDER = "Waiting for user permission..."
"""Content of tool messages that await a confirmation decision."""

PERMISSION_HEADER = "I need your permission to perform the following operations:\n\n"
PERMISSION_FOOTER = "\nDo you want to allow these operations? (yes/no)"

PERMISSION_DENIED_GUIDANCE = (
    "Permission was denied by the user. Acknowledge this to the user and suggest "
    "alternative approaches that don't require file or system changes."
)

ERROR_NOTICE_TEMPLATE = (
    "There was an error in the previous step: {error}. "
    "Please handle this gracefully and adjust your approach."
)

PROJECT_PATH_HINT_TEMPLATE = "Remember you are working in project path: {path}"

RESET_SYSTEM_MESSAGE = "The conversation has been reset due to an API error."

RESET_APOLOGY = (
    "I encountered an issue while processing your request. The conversation has been "
    "reset to prevent further errors. Please try your question again."
)

CEILING_PREFIX = "I'm sorry, but I encountered an issue while processing your request. "
CEILING_NO_ERROR_HINT = "Please try again with a clearer or simpler query."

EMPTY_HISTORY_SUMMARY = "No conversation history yet."
