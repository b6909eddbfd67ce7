"""Tests for session persistence."""

import json as _json
import pathlib as _pathlib

import pytest as _pytest

import sigrun.constants as constants
import sigrun.core.conversation_store as conversation_store
import sigrun.session as session


def _suspended_store() -> conversation_store.ConversationStore:
    return conversation_store.ConversationStore.from_dict(
        {
            "max_length": 10,
            "messages": [
                {"role": "user", "content": "Create the build directory"},
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {
                            "id": "c1",
                            "type": "function",
                            "function": {"name": "create_directory", "arguments": "{}"},
                        }
                    ],
                },
                {"role": "tool", "tool_call_id": "c1", "content": constants.PERMISSION_PLACEHOLDER},
                {"role": "assistant", "content": "I need your permission..."},
            ],
        }
    )


class TestSessionIds:
    """Tests for id generation and validation."""

    def test_generated_ids_are_valid(self) -> None:
        session_id = session.generate_session_id()
        assert len(session_id) == 8
        assert session.validate_session_id(session_id) == session_id

    @_pytest.mark.parametrize("bad_id", ["", "../../etc/passwd", "a/b", "x" * 101, "id with space"])
    def test_rejects_unsafe_ids(self, bad_id: str) -> None:
        with _pytest.raises(session.InvalidSessionIdError):
            session.validate_session_id(bad_id)

    def test_manager_rejects_traversal(self, session_manager: session.SessionManager) -> None:
        with _pytest.raises(session.InvalidSessionIdError):
            session_manager.load("../secrets")
        assert session_manager.exists("../secrets") is False


class TestSession:
    """Tests for the Session dataclass."""

    def test_create_defaults(self, tmp_path: _pathlib.Path) -> None:
        s = session.Session.create(cwd=tmp_path, model="gpt-4o-mini")

        assert s.cwd == str(tmp_path)
        assert s.model == "gpt-4o-mini"
        assert s.history == {}
        assert s.message_count == 0
        assert s.awaiting_confirmation is False

    def test_empty_session_gives_fresh_store(self) -> None:
        store = session.Session.create(session_id="empty").to_store(max_length=6)
        assert len(store) == 0
        assert store.max_length == 6

    def test_update_from_store_sets_title_once(self) -> None:
        s = session.Session.create(session_id="titled")
        store = conversation_store.ConversationStore()
        store.append({"role": "user", "content": "q" * 100})
        s.update_from_store(store, tool_metrics={"list_dir": {"calls": 1}})

        assert s.title == "q" * 80
        assert s.message_count == 1
        assert s.tool_metrics == {"list_dir": {"calls": 1}}

        store.append({"role": "assistant", "content": "a"})
        store.append({"role": "user", "content": "second"})
        s.update_from_store(store)
        assert s.title == "q" * 80
        assert s.tool_metrics == {"list_dir": {"calls": 1}}

    def test_awaiting_confirmation(self) -> None:
        s = session.Session.create(session_id="waiting")
        s.update_from_store(_suspended_store())

        assert s.awaiting_confirmation is True
        assert s.summary().awaiting_confirmation is True

    def test_dict_round_trip(self) -> None:
        s = session.Session.create(session_id="round")
        s.update_from_store(_suspended_store())

        restored = session.Session.from_dict(_json.loads(_json.dumps(s.to_dict())))

        assert restored == s
        assert restored.to_store().history() == _suspended_store().history()


class TestSessionManager:
    """Tests for SessionManager storage."""

    def test_save_load_delete(self, session_manager: session.SessionManager) -> None:
        s = session.Session.create(session_id="abc")
        s.update_from_store(_suspended_store())

        path = session_manager.save(s)

        assert path == session_manager.sessions_dir / "abc.json"
        assert session_manager.exists("abc")
        loaded = session_manager.load("abc")
        assert loaded is not None
        assert loaded.awaiting_confirmation is True

        assert session_manager.delete("abc") is True
        assert session_manager.delete("abc") is False
        assert session_manager.load("abc") is None

    def test_unreadable_file_counts_as_missing(
        self, session_manager: session.SessionManager
    ) -> None:
        session_manager.sessions_dir.mkdir(parents=True)
        (session_manager.sessions_dir / "broken.json").write_text("{not json")

        assert session_manager.load("broken") is None
        assert session_manager.list_sessions() == []

    def test_list_sessions_newest_first(self, session_manager: session.SessionManager) -> None:
        assert session_manager.list_sessions() == []

        older = session.Session.create(session_id="older")
        older.updated_at = "2024-01-01T00:00:00+00:00"
        newer = session.Session.create(session_id="newer")
        newer.updated_at = "2024-06-01T00:00:00+00:00"
        session_manager.save(older)
        session_manager.save(newer)

        assert [s.id for s in session_manager.list_sessions()] == ["newer", "older"]
        summaries = session_manager.list_summaries()
        assert summaries[0].id == "newer"
        assert summaries[0].message_count == 0
        assert [s.id for s in session_manager.list_sessions(limit=1)] == ["newer"]

    def test_get_or_create(self, session_manager: session.SessionManager) -> None:
        created = session_manager.get_or_create("fresh", model="gpt-4o")
        assert created.id == "fresh"
        assert created.model == "gpt-4o"
        assert not session_manager.exists("fresh")

        session_manager.save(created)
        assert session_manager.get_or_create("fresh").created_at == created.created_at

        anonymous = session_manager.get_or_create()
        assert session.validate_session_id(anonymous.id) == anonymous.id
