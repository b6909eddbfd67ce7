"""
JSONL event log of one agent loop session.

Every line is a JSON object with `timestamp`, `event_number` and
`event_type`, plus the fields of that event. The log is append-only and is
flushed after each line, so a crashed process still leaves a readable file.
"""

from __future__ import annotations

import datetime as _datetime
import enum as _enum
import json as _json
import logging as _logging
import os as _os
import pathlib as _pathlib
import typing as _typing

if _typing.TYPE_CHECKING:
    import sigrun.config as config

_logger = _logging.getLogger(__name__)

DEFAULT_LOG_DIR = _pathlib.Path("/tmp/sigrun-logs")


class EventType(str, _enum.Enum):
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ITERATION = "iteration"
    ERROR = "error"
    HISTORY_RESET = "history_reset"
    HISTORY_SUMMARIZED = "history_summarized"
    CONFIRMATION_REQUESTED = "confirmation_requested"
    CONFIRMATION_RESOLVED = "confirmation_resolved"
    USAGE = "usage"


def _open_log(
    log_dir: _pathlib.Path | str | None,
    log_file: _pathlib.Path | str | None,
    session_id: str,
    private_mode: bool,
) -> tuple[_pathlib.Path, _typing.TextIO] | None:
    """Open the log for appending; None (with a warning) if that is impossible."""
    try:
        if log_file:
            path = _pathlib.Path(log_file)
        else:
            directory = _pathlib.Path(log_dir) if log_dir else DEFAULT_LOG_DIR
            directory.mkdir(parents=True, exist_ok=True)
            if private_mode:
                _os.chmod(directory, 0o700)
            path = directory / f"sigrun_{session_id}.jsonl"
        # Closed in ConversationLogger.close()
        return path, open(path, "a", encoding="utf-8")  # noqa: SIM115
    except OSError as e:
        _logger.warning("Conversation logging disabled: %s", e)
        return None


class ConversationLogger:
    """
    Writes agent loop events to `sigrun_<session_id>.jsonl`.

    A logger that is disabled, or whose file could not be opened, accepts
    every call and writes nothing. Write errors are swallowed so logging can
    never fail the loop.

    Usage:
        with ConversationLogger(log_dir="/tmp/logs", model="gpt-4o") as log:
            log.log_user_message("Hello")
    """

    def __init__(
        self,
        *,
        log_dir: _pathlib.Path | str | None = None,
        log_file: _pathlib.Path | str | None = None,
        private_mode: bool = True,
        provider: str = "unknown",
        model: str = "unknown",
        session_id: str | None = None,
        enabled: bool = True,
    ) -> None:
        """
        Args:
            log_dir: Directory for the log (default: /tmp/sigrun-logs)
            log_file: Exact file to append to; overrides log_dir
            private_mode: Restrict log_dir to its owner (0o700)
            provider: Provider identifier recorded in session_start
            model: Model name recorded in session_start
            session_id: Used in the file name (default: a timestamp)
            enabled: False makes every call a no-op
        """
        self._session_id = session_id or _datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        self._event_count = 0
        self._file: _typing.TextIO | None = None
        self._file_path: _pathlib.Path | None = None

        opened = _open_log(log_dir, log_file, self._session_id, private_mode) if enabled else None
        self._enabled = opened is not None
        if opened is None:
            return
        self._file_path, self._file = opened
        self._emit(
            EventType.SESSION_START,
            session_id=self._session_id,
            provider=provider,
            model=model,
        )

    @classmethod
    def from_settings(
        cls,
        settings: config.Settings,
        session_id: str,
        *,
        enabled: bool = True,
    ) -> ConversationLogger:
        """Logger configured by the `logging` section; `enabled=False` overrides it."""
        return cls(
            log_dir=settings.logs_dir,
            private_mode=settings.logging.private,
            provider=settings.provider.base_url,
            model=settings.provider.model,
            session_id=session_id,
            enabled=enabled and settings.logging.enabled,
        )

    def _emit(self, event_type: EventType | str, **fields: _typing.Any) -> None:
        if self._file is None:
            return
        self._event_count += 1
        name = event_type.value if isinstance(event_type, EventType) else event_type
        line = _json.dumps(
            {
                "timestamp": _datetime.datetime.now().isoformat(),
                "event_number": self._event_count,
                "event_type": name,
                **fields,
            },
            default=str,
        )
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except OSError as e:
            _logger.debug("Dropped log event %s: %s", event_type, e)

    def log_user_message(self, content: str) -> None:
        self._emit(EventType.USER_MESSAGE, content=content)

    def log_assistant_message(self, content: str) -> None:
        self._emit(EventType.ASSISTANT_MESSAGE, content=content)

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: dict[str, _typing.Any] | str,
        tool_id: str | None = None,
    ) -> None:
        """Record a dispatch. Unparseable arguments are logged as the raw string."""
        self._emit(EventType.TOOL_CALL, tool_name=tool_name, tool_input=tool_input, tool_id=tool_id)

    def log_tool_result(
        self,
        tool_name: str,
        success: bool,
        output: str | None = None,
        tool_id: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        extra = {} if duration_ms is None else {"duration_ms": round(duration_ms, 2)}
        self._emit(
            EventType.TOOL_RESULT,
            tool_name=tool_name,
            success=success,
            output=output,
            tool_id=tool_id,
            **extra,
        )

    def log_iteration(self, iteration: int, *, streaming: bool = False) -> None:
        self._emit(EventType.ITERATION, iteration=iteration, streaming=streaming)

    def log_error(self, error: str, context: str | None = None) -> None:
        self._emit(EventType.ERROR, error=error, context=context)

    def log_history_reset(self, reason: str, *, removed_orphans: int = 0) -> None:
        """The history was wiped after the provider rejected its structure."""
        self._emit(EventType.HISTORY_RESET, reason=reason, removed_orphans=removed_orphans)

    def log_history_summarized(
        self,
        summarized_count: int,
        file_references: list[str],
        *,
        fallback: bool = False,
    ) -> None:
        self._emit(
            EventType.HISTORY_SUMMARIZED,
            summarized_count=summarized_count,
            file_references=file_references,
            fallback=fallback,
        )

    def log_confirmation_requested(self, message: str, tool_ids: list[str]) -> None:
        self._emit(EventType.CONFIRMATION_REQUESTED, message=message, tool_ids=tool_ids)

    def log_confirmation_resolved(self, granted: bool, reply: str | None = None) -> None:
        self._emit(EventType.CONFIRMATION_RESOLVED, granted=granted, reply=reply)

    def log_usage(self, input_tokens: int, output_tokens: int) -> None:
        self._emit(
            EventType.USAGE,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )

    def log_event(self, event_type: str, **fields: _typing.Any) -> None:
        """Record an event type the methods above do not cover."""
        self._emit(event_type, **fields)

    @property
    def file_path(self) -> _pathlib.Path | None:
        return self._file_path

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def event_count(self) -> int:
        return self._event_count

    def close(self) -> None:
        """Write session_end and close the file. Further calls are no-ops."""
        if self._file is None:
            return
        self._emit(EventType.SESSION_END, total_events=self._event_count)
        file, self._file = self._file, None
        try:
            file.close()
        except OSError as e:
            _logger.debug("Error closing conversation log: %s", e)

    def __enter__(self) -> ConversationLogger:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: _typing.Any,
    ) -> None:
        if exc_type is not None:
            self.log_error(str(exc_val), context=f"Exception: {exc_type.__name__}")
        self.close()
