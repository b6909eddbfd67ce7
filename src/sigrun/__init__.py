"""
Sigrun - Agentic Loop Controller

Drives a chat-completion model through repeated tool-calling rounds until it
produces a final answer, with user confirmation for state-mutating tools.
Named after the Norse valkyrie.
"""

import importlib.metadata as _metadata

# Version comes from the installed distribution metadata
_raw_version = _metadata.version("sigrun")
__version_info__: tuple[int, int, int] = tuple(  # type: ignore[assignment]
    int(x) for x in _raw_version.split(".")[:3]
)
__version__: str = ".".join(str(x) for x in __version_info__)
__author__ = "Sigrun Contributors"

from sigrun.config import Settings  # noqa: E402
from sigrun.core.agent_loop import AgentLoop, AgentLoopResult, LoopStatus  # noqa: E402
from sigrun.core.conversation_store import ConversationStore  # noqa: E402
from sigrun.session import Session, SessionManager  # noqa: E402

__all__ = [
    "__version__",
    "__version_info__",
    "AgentLoop",
    "AgentLoopResult",
    "ConversationStore",
    "LoopStatus",
    "Session",
    "SessionManager",
    "Settings",
]
