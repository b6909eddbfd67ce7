"""
Core agent loop for Sigrun.

This module contains the loop state machine and the components it drives:
conversation history, payload formatting, tool call processing and stream
accumulation. It defines the confirmation interface that front ends implement.
"""

from sigrun.core.agent_loop import (
    AgentLoop,
    AgentLoopCallbacks,
    AgentLoopResult,
    LoopState,
    LoopStatus,
)
from sigrun.core.confirmation import (
    AutoApproveChannel,
    AutoDenyChannel,
    ConfirmationChannel,
    DeferredConfirmation,
)
from sigrun.core.conversation_store import ConversationStore, extract_file_references
from sigrun.core.message_formatter import build as build_payload
from sigrun.core.message_validators import MessageValidationError, validate_message_structure
from sigrun.core.prompts import get_system_prompt
from sigrun.core.streaming import ToolCallBuffer
from sigrun.core.tool_processor import ToolBatchOutcome, ToolCallProcessor
from sigrun.core.types import (
    HistorySummary,
    ToolCallDisplay,
    ToolResult,
    ToolResultDisplay,
)

__all__ = [
    # Data types (DTOs)
    "HistorySummary",
    "ToolCallDisplay",
    "ToolResult",
    "ToolResultDisplay",
    # History
    "ConversationStore",
    "extract_file_references",
    # Payload
    "MessageValidationError",
    "build_payload",
    "get_system_prompt",
    "validate_message_structure",
    # Tool processing
    "ToolBatchOutcome",
    "ToolCallBuffer",
    "ToolCallProcessor",
    # Confirmation
    "AutoApproveChannel",
    "AutoDenyChannel",
    "ConfirmationChannel",
    "DeferredConfirmation",
    # Loop
    "AgentLoop",
    "AgentLoopCallbacks",
    "AgentLoopResult",
    "LoopState",
    "LoopStatus",
]
