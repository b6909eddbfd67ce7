"""Tests for the JSONL conversation logger."""

import json as _json
import os as _os
import pathlib as _pathlib
import stat as _stat

import pytest as _pytest

import sigrun.config as config
import sigrun.logging as sigrun_logging


def _read_events(path: _pathlib.Path) -> list[dict]:
    return [_json.loads(line) for line in path.read_text().splitlines()]


class TestConversationLogger:
    """Tests for event writing."""

    def test_session_start_is_first_event(self, tmp_path: _pathlib.Path) -> None:
        logger = sigrun_logging.ConversationLogger(
            log_dir=tmp_path, provider="openai", model="gpt-4o", session_id="abc123"
        )
        logger.close()

        assert logger.file_path == tmp_path / "sigrun_abc123.jsonl"
        events = _read_events(logger.file_path)
        assert events[0]["event_type"] == "session_start"
        assert events[0]["provider"] == "openai"
        assert events[0]["model"] == "gpt-4o"
        assert events[0]["session_id"] == "abc123"

    def test_events_are_numbered_in_order(self, tmp_path: _pathlib.Path) -> None:
        logger = sigrun_logging.ConversationLogger(log_dir=tmp_path, session_id="s1")
        logger.log_user_message("List the files")
        logger.log_iteration(1)
        logger.log_tool_call("list_dir", {"path": "."}, tool_id="c1")
        logger.log_tool_result("list_dir", True, "a.py", tool_id="c1", duration_ms=1.23456)
        logger.log_assistant_message("There is one file.")
        logger.log_usage(10, 5)
        logger.close()

        events = _read_events(logger.file_path)
        assert [e["event_type"] for e in events] == [
            "session_start",
            "user_message",
            "iteration",
            "tool_call",
            "tool_result",
            "assistant_message",
            "usage",
            "session_end",
        ]
        assert [e["event_number"] for e in events] == list(range(1, 9))
        assert events[4]["duration_ms"] == 1.23
        assert events[6]["total_tokens"] == 15
        assert events[7]["total_events"] == 7

    def test_loop_bookkeeping_events(self, tmp_path: _pathlib.Path) -> None:
        logger = sigrun_logging.ConversationLogger(log_dir=tmp_path, session_id="s2")
        logger.log_history_reset("orphan_tool_result", removed_orphans=2)
        logger.log_history_summarized(5, ["/src/app.py"], fallback=True)
        logger.log_confirmation_requested("I need your permission...", ["c1", "c2"])
        logger.log_confirmation_resolved(False, reply="no")
        logger.log_event("custom", detail="x")
        logger.close()

        events = {e["event_type"]: e for e in _read_events(logger.file_path)}
        assert events["history_reset"]["removed_orphans"] == 2
        assert events["history_summarized"]["file_references"] == ["/src/app.py"]
        assert events["history_summarized"]["fallback"] is True
        assert events["confirmation_requested"]["tool_ids"] == ["c1", "c2"]
        assert events["confirmation_resolved"] == {
            **events["confirmation_resolved"],
            "granted": False,
            "reply": "no",
        }
        assert events["custom"]["detail"] == "x"

    def test_explicit_log_file(self, tmp_path: _pathlib.Path) -> None:
        path = tmp_path / "run.jsonl"
        logger = sigrun_logging.ConversationLogger(log_file=path)
        logger.close()
        assert path.exists()

    def test_private_mode_restricts_directory(self, tmp_path: _pathlib.Path) -> None:
        log_dir = tmp_path / "logs"
        sigrun_logging.ConversationLogger(log_dir=log_dir, private_mode=True).close()
        assert _stat.S_IMODE(log_dir.stat().st_mode) == 0o700


class TestDisabled:
    """A disabled logger accepts every call and writes nothing."""

    def test_disabled_writes_nothing(self, tmp_path: _pathlib.Path) -> None:
        logger = sigrun_logging.ConversationLogger(log_dir=tmp_path, enabled=False)
        logger.log_user_message("hello")
        logger.close()

        assert logger.enabled is False
        assert logger.file_path is None
        assert logger.event_count == 0
        assert list(tmp_path.iterdir()) == []

    def test_unusable_directory_disables_logging(self, tmp_path: _pathlib.Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        logger = sigrun_logging.ConversationLogger(log_dir=blocker / "logs")

        assert logger.enabled is False
        logger.log_user_message("ignored")


class TestContextManager:
    """Tests for with-statement usage."""

    def test_exception_is_logged_then_closed(self, tmp_path: _pathlib.Path) -> None:
        with (
            _pytest.raises(RuntimeError),
            sigrun_logging.ConversationLogger(log_dir=tmp_path, session_id="s3") as logger,
        ):
            raise RuntimeError("boom")

        events = _read_events(logger.file_path)
        assert events[-2]["event_type"] == "error"
        assert events[-2]["error"] == "boom"
        assert events[-2]["context"] == "Exception: RuntimeError"
        assert events[-1]["event_type"] == "session_end"


class TestFromSettings:
    """Tests for building a logger from the logging section."""

    def _settings(self, isolated_env, log_dir: _pathlib.Path, **env: str) -> config.Settings:
        with isolated_env:
            _os.environ["SIGRUN_LOGGING__DIR"] = str(log_dir)
            _os.environ.update(env)
            return config.Settings.construct_without_dotenv()

    def test_uses_configured_directory(self, isolated_env, tmp_path: _pathlib.Path) -> None:
        settings = self._settings(isolated_env, tmp_path / "logs")

        logger = sigrun_logging.ConversationLogger.from_settings(settings, "s4")
        logger.close()

        assert logger.file_path == tmp_path / "logs" / "sigrun_s4.jsonl"
        start = _read_events(logger.file_path)[0]
        assert start["model"] == settings.provider.model
        assert start["provider"] == settings.provider.base_url

    def test_disabled_by_settings_or_caller(self, isolated_env, tmp_path: _pathlib.Path) -> None:
        off = self._settings(isolated_env, tmp_path / "logs", SIGRUN_LOGGING__ENABLED="false")
        on = self._settings(isolated_env, tmp_path / "logs")

        assert not sigrun_logging.ConversationLogger.from_settings(off, "a").enabled
        assert not sigrun_logging.ConversationLogger.from_settings(on, "b", enabled=False).enabled
