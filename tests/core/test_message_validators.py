"""Tests for message structure validators.

These tests ensure the validators catch history bookkeeping bugs while
accepting every payload shape the agent loop legitimately produces.
"""

import typing as _typing

import pytest as _pytest

import sigrun.constants as constants
import sigrun.core.message_validators as validators

SYSTEM = {"role": "system", "content": "You are Sigrun."}


def _call(*ids: str) -> dict[str, _typing.Any]:
    return {
        "role": "assistant",
        "content": "",
        "tool_calls": [
            {"id": i, "type": "function", "function": {"name": "list_dir", "arguments": "{}"}}
            for i in ids
        ],
    }


def _result(call_id: str, content: str = "ok") -> dict[str, _typing.Any]:
    return {"role": "tool", "tool_call_id": call_id, "content": content}


def _violation(messages: list[dict[str, _typing.Any]]) -> str:
    with _pytest.raises(validators.MessageValidationError) as exc_info:
        validators.validate_message_structure(messages)
    return exc_info.value.violation_type


class TestRequiredFields:
    """Tests for required field validation."""

    def test_missing_role(self) -> None:
        assert _violation([SYSTEM, {"content": "Hello"}]) == "missing_role"

    def test_invalid_role(self) -> None:
        assert _violation([SYSTEM, {"role": "bot", "content": "Hello"}]) == "invalid_role"

    def test_empty_tool_calls(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "tool_calls": []},
        ]
        assert _violation(messages) == "empty_tool_calls"

    def test_tool_result_needs_tool_call_id(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Hi"},
            _call("c1"),
            {"role": "tool", "content": "x"},
        ]
        assert _violation(messages) == "missing_tool_call_id"


class TestSystemPrompt:
    """The payload always starts with the system prompt."""

    def test_must_lead(self) -> None:
        assert _violation([{"role": "user", "content": "Hi"}]) == "missing_system_prompt"

    def test_extra_system_messages_are_allowed(self) -> None:
        messages = [
            SYSTEM,
            {"role": "system", "content": constants.PERMISSION_DENIED_GUIDANCE},
            {"role": "system", "content": "Summary of earlier conversation:\n..."},
            {"role": "user", "content": "Hi"},
        ]
        validators.validate_message_structure(messages)


class TestToolCallConsistency:
    """Every tool result answers a call, and every call gets a result."""

    def test_matched_results_pass(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Hi"},
            _call("c1", "c2"),
            _result("c1"),
            _result("c2"),
            {"role": "assistant", "content": "Done."},
        ]
        validators.validate_message_structure(messages)

    def test_orphan_result(self) -> None:
        messages = [SYSTEM, {"role": "user", "content": "Hi"}, _call("c1"), _result("c9")]
        assert _violation(messages) == "orphan_tool_result"

    def test_unresolved_call_at_end(self) -> None:
        messages = [SYSTEM, {"role": "user", "content": "Hi"}, _call("c1", "c2"), _result("c1")]
        assert _violation(messages) == "unresolved_tool_call"

    def test_unresolved_call_before_next_call(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Hi"},
            _call("c1"),
            {"role": "user", "content": "again"},
            _call("c2"),
            _result("c2"),
        ]
        assert _violation(messages) == "unresolved_tool_call"

    def test_misplaced_result(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Hi"},
            _call("c1"),
            {"role": "user", "content": "interrupt"},
            _result("c1"),
        ]
        assert _violation(messages) == "misplaced_tool_result"

    def test_permission_request_after_placeholders_passes(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Create it"},
            _call("c1"),
            _result("c1", constants.PERMISSION_PLACEHOLDER),
            {"role": "assistant", "content": "I need your permission..."},
            {"role": "user", "content": "yes"},
        ]
        validators.validate_message_structure(messages)


class TestSequencing:
    """Tests for role sequencing rules."""

    def test_consecutive_assistants(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "One"},
            {"role": "assistant", "content": "Two"},
        ]
        assert _violation(messages) == "consecutive_assistant_messages"

    def test_error_notice_before_user_query_passes(self) -> None:
        messages = [
            SYSTEM,
            {"role": "user", "content": constants.ERROR_NOTICE_TEMPLATE.format(error="x")},
            {"role": "user", "content": "Hi"},
        ]
        validators.validate_message_structure(messages)


class TestEmptyContent:
    """Tests for empty content detection."""

    @_pytest.mark.parametrize("content", ["", "   ", None])
    def test_empty_user_content(self, content: str | None) -> None:
        assert _violation([SYSTEM, {"role": "user", "content": content}]) == "empty_content"

    def test_empty_tool_result(self) -> None:
        messages = [SYSTEM, {"role": "user", "content": "Hi"}, _call("c1"), _result("c1", "")]
        assert _violation(messages) == "empty_content"


class TestHelpers:
    """Tests for helper functions."""

    def test_find_orphan_tool_results(self) -> None:
        messages = [_result("x"), _call("c1"), _result("c1"), _result("c2")]
        assert validators.find_orphan_tool_results(messages) == [0, 3]

    def test_assert_valid_messages(self) -> None:
        validators.assert_valid_messages([SYSTEM, {"role": "user", "content": "Hi"}])
        with _pytest.raises(AssertionError, match="orphan_tool_result"):
            validators.assert_valid_messages([SYSTEM, _result("x")], context="unit")

    def test_non_strict_collects_violations(self) -> None:
        messages = [{"role": "user", "content": ""}, _result("x")]
        violations = validators.validate_message_structure(messages, strict=False)
        kinds = " ".join(violations)
        assert "[missing_system_prompt]" in kinds
        assert "[orphan_tool_result]" in kinds
        assert "[empty_content]" in kinds
