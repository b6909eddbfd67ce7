"""
Session persistence.

A session is one conversation saved as JSON, including any tool calls still
waiting for permission, so that a loop suspended in one process can be
resumed by another.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import json as _json
import logging as _logging
import os as _os
import pathlib as _pathlib
import re as _re
import secrets as _secrets
import string as _string
import typing as _typing

import sigrun.constants as _constants
import sigrun.core.conversation_store as conversation_store

_logger = _logging.getLogger(__name__)

_SESSION_ID_PATTERN = _re.compile(r"^[a-zA-Z0-9_-]{1,100}$")
_ID_ALPHABET = _string.ascii_lowercase + _string.digits
_TITLE_LENGTH = 80


class InvalidSessionIdError(ValueError):
    """A session id would not be a safe file name."""

    pass


def generate_session_id() -> str:
    """Random 8-character id from [a-z0-9]."""
    return "".join(_secrets.choice(_ID_ALPHABET) for _ in range(8))


def validate_session_id(session_id: str) -> str:
    """
    Return `session_id` if it is 1-100 characters of [a-zA-Z0-9_-].

    Ids become file names, so anything with a path separator or dot is
    refused.

    Raises:
        InvalidSessionIdError: The id does not match
    """
    if not _SESSION_ID_PATTERN.fullmatch(session_id):
        raise InvalidSessionIdError(
            f"Invalid session ID: {session_id!r}. "
            "Use letters, digits, '-' or '_' (at most 100 characters)."
        )
    return session_id


def _utc_now() -> str:
    return _datetime.datetime.now(_datetime.UTC).isoformat()


def _first_user_text(messages: _typing.Iterable[dict[str, _typing.Any]]) -> str | None:
    for message in messages:
        content = message.get("content")
        if message.get("role") == "user" and isinstance(content, str) and content.strip():
            return content.strip()[:_TITLE_LENGTH]
    return None


@_dataclasses.dataclass(frozen=True)
class SessionSummary:
    """One row of a session listing."""

    id: str
    title: str | None
    model: str
    updated_at: str
    message_count: int
    awaiting_confirmation: bool

    def to_dict(self) -> dict[str, _typing.Any]:
        return _dataclasses.asdict(self)


@_dataclasses.dataclass
class Session:
    """
    A saved conversation.

    `history` holds ConversationStore.to_dict() output; to_store() turns it
    back into a live store.
    """

    id: str
    cwd: str
    model: str
    created_at: str = _dataclasses.field(default_factory=_utc_now)
    updated_at: str = ""
    history: dict[str, _typing.Any] = _dataclasses.field(default_factory=dict)
    title: str | None = None
    tool_metrics: dict[str, dict[str, _typing.Any]] = _dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_session_id(self.id)
        if not self.updated_at:
            self.updated_at = self.created_at

    @classmethod
    def create(
        cls,
        cwd: _pathlib.Path | str | None = None,
        model: str = _constants.DEFAULT_MODEL,
        session_id: str | None = None,
    ) -> Session:
        return cls(
            id=session_id or generate_session_id(),
            cwd=str(cwd or _pathlib.Path.cwd()),
            model=model,
        )

    def to_store(
        self,
        max_length: int = _constants.DEFAULT_MAX_HISTORY_LENGTH,
    ) -> conversation_store.ConversationStore:
        """Live store for this session. A session with no history gets an empty one."""
        if not self.history:
            return conversation_store.ConversationStore(max_length)
        return conversation_store.ConversationStore.from_dict(self.history)

    def update_from_store(
        self,
        store: conversation_store.ConversationStore,
        *,
        tool_metrics: dict[str, dict[str, _typing.Any]] | None = None,
    ) -> None:
        """Snapshot the store. The title is taken from the first user message, once."""
        self.history = store.to_dict()
        if self.title is None:
            self.title = _first_user_text(self.history["messages"])
        if tool_metrics:
            self.tool_metrics = dict(tool_metrics)
        self.updated_at = _utc_now()

    @property
    def message_count(self) -> int:
        return len(self.history.get("messages", ()))

    @property
    def awaiting_confirmation(self) -> bool:
        """The saved history ends in unresolved permission placeholders."""
        return bool(self.history) and self.to_store().pending_confirmation() is not None

    def summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id,
            title=self.title,
            model=self.model,
            updated_at=self.updated_at,
            message_count=self.message_count,
            awaiting_confirmation=self.awaiting_confirmation,
        )

    def to_dict(self) -> dict[str, _typing.Any]:
        return _dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, _typing.Any]) -> Session:
        """
        Rebuild a session, ignoring keys this version does not know.

        Raises:
            KeyError: A required field is missing
            InvalidSessionIdError: The stored id is unsafe
        """
        known = {f.name for f in _dataclasses.fields(cls)}
        fields = {k: v for k, v in data.items() if k in known and v is not None}
        for required in ("id", "cwd", "model"):
            if required not in fields:
                raise KeyError(required)
        return cls(**fields)


class SessionManager:
    """Stores one `<id>.json` file per session under `sessions_dir`."""

    def __init__(self, sessions_dir: _pathlib.Path) -> None:
        self.sessions_dir = sessions_dir

    def _path(self, session_id: str) -> _pathlib.Path:
        return self.sessions_dir / f"{validate_session_id(session_id)}.json"

    def _read(self, path: _pathlib.Path) -> Session | None:
        try:
            return Session.from_dict(_json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            _logger.warning("Ignoring unreadable session file %s: %s", path, e)
            return None

    def exists(self, session_id: str) -> bool:
        try:
            return self._path(session_id).is_file()
        except InvalidSessionIdError:
            return False

    def save(self, session: Session) -> _pathlib.Path:
        """Write the session, replacing any previous file atomically."""
        path = self._path(session.id)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(_json.dumps(session.to_dict(), indent=2), encoding="utf-8")
        _os.replace(tmp_path, path)
        _logger.debug("Saved session %s to %s", session.id, path)
        return path

    def load(self, session_id: str) -> Session | None:
        """
        Load a session, or None if it is missing or unreadable.

        Raises:
            InvalidSessionIdError: The id is unsafe
        """
        path = self._path(session_id)
        if not path.is_file():
            return None
        return self._read(path)

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def list_sessions(self, limit: int | None = None) -> list[Session]:
        """Readable sessions, most recently updated first."""
        if not self.sessions_dir.is_dir():
            return []
        sessions = [
            session
            for path in self.sessions_dir.glob("*.json")
            if (session := self._read(path)) is not None
        ]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions[:limit] if limit is not None else sessions

    def list_summaries(self, limit: int | None = None) -> list[SessionSummary]:
        return [s.summary() for s in self.list_sessions(limit)]

    def get_or_create(
        self,
        session_id: str | None = None,
        **create_kwargs: _typing.Any,
    ) -> Session:
        """Load `session_id` if it exists; otherwise start a new session with that id."""
        if session_id is not None:
            existing = self.load(session_id)
            if existing is not None:
                return existing
        return Session.create(session_id=session_id, **create_kwargs)
