"""
Conversation logging for Sigrun.

Provides JSONL logging of agent loop events for debugging and analysis.
"""

from sigrun.logging.conversation_logger import ConversationLogger, EventType

__all__ = [
    "ConversationLogger",
    "EventType",
]
