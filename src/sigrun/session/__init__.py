"""
Session management for Sigrun.

Sessions persist conversation history, including pending permission
requests, so a suspended agent loop can be resumed later.
"""

from sigrun.session.session import (
    InvalidSessionIdError,
    Session,
    SessionManager,
    SessionSummary,
    generate_session_id,
    validate_session_id,
)

__all__ = [
    "InvalidSessionIdError",
    "Session",
    "SessionManager",
    "SessionSummary",
    "generate_session_id",
    "validate_session_id",
]
