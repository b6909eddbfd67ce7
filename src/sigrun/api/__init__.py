"""
Completion provider layer for Sigrun.

Provides the CompletionProvider interface, the OpenAI-compatible HTTP
implementation, and the structured error taxonomy the agent loop branches on.
"""

from sigrun.api.base import CompletionProvider
from sigrun.api.errors import (
    ConfigurationError,
    ProtocolValidationError,
    ProviderAuthError,
    ProviderError,
    SigrunError,
    TransientProviderError,
)
from sigrun.api.factory import create_provider
from sigrun.api.openai_provider import OpenAICompatibleProvider
from sigrun.api.types import (
    CompletionResponse,
    StreamDelta,
    ToolCall,
    ToolCallFragment,
    ToolSchema,
    Usage,
)

__all__ = [
    # Base class
    "CompletionProvider",
    # Implementations
    "OpenAICompatibleProvider",
    # Factory
    "create_provider",
    # Exceptions
    "ConfigurationError",
    "ProtocolValidationError",
    "ProviderAuthError",
    "ProviderError",
    "SigrunError",
    "TransientProviderError",
    # Types
    "CompletionResponse",
    "StreamDelta",
    "ToolCall",
    "ToolCallFragment",
    "ToolSchema",
    "Usage",
]
