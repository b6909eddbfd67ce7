"""Message structure validators for conversation integrity.

These validators check that a payload about to be sent to the completion
provider follows the structural rules the chat API enforces. They are used:
1. In tests, to catch history bookkeeping bugs
2. Optionally by MessageFormatter.build(validate=True) to fail fast

The validators check for issues like:
- Missing or unknown roles
- Tool results that reference no preceding tool call (orphans)
- Tool calls that never received a result
- Tool results that are not directly after their assistant message
"""

import typing as _typing

_ROLES = ("system", "user", "assistant", "tool")


class MessageValidationError(Exception):
    """Raised when message structure invariants are violated."""

    def __init__(
        self,
        message: str,
        *,
        violation_type: str,
        messages: list[dict[str, _typing.Any]] | None = None,
        context: dict[str, _typing.Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.violation_type = violation_type
        self.messages = messages
        self.context = context or {}


def validate_message_structure(
    messages: list[dict[str, _typing.Any]],
    *,
    strict: bool = True,
) -> list[str]:
    """Validate all message structure invariants.

    Args:
        messages: List of messages to validate.
        strict: If True, raise MessageValidationError on first violation.
                If False, collect and return all violations as strings.

    Returns:
        List of violation descriptions (empty if valid).

    Raises:
        MessageValidationError: If strict=True and any violation found.
    """
    violations: list[str] = []

    validators = [
        _validate_required_fields,
        _validate_leading_system_prompt,
        _validate_tool_call_consistency,
        _validate_tool_result_placement,
        _validate_no_consecutive_assistants,
        _validate_no_empty_content,
    ]

    for validator in validators:
        try:
            validator(messages)
        except MessageValidationError as e:
            if strict:
                raise
            violations.append(f"[{e.violation_type}] {e}")

    return violations


def _validate_required_fields(messages: list[dict[str, _typing.Any]]) -> None:
    for i, msg in enumerate(messages):
        role = msg.get("role")
        if not role:
            raise MessageValidationError(
                f"Message {i} missing 'role' field",
                violation_type="missing_role",
                messages=messages,
                context={"index": i, "message": msg},
            )

        if role not in _ROLES:
            raise MessageValidationError(
                f"Message {i} has invalid role: {role!r}",
                violation_type="invalid_role",
                messages=messages,
                context={"index": i, "role": role},
            )

        if "tool_calls" in msg and not msg["tool_calls"]:
            raise MessageValidationError(
                f"Message {i} has an empty 'tool_calls' array",
                violation_type="empty_tool_calls",
                messages=messages,
                context={"index": i},
            )

        if role == "tool" and not msg.get("tool_call_id"):
            raise MessageValidationError(
                f"Tool result message {i} missing 'tool_call_id'",
                violation_type="missing_tool_call_id",
                messages=messages,
                context={"index": i, "message": msg},
            )


def _validate_leading_system_prompt(messages: list[dict[str, _typing.Any]]) -> None:
    if messages and messages[0].get("role") != "system":
        raise MessageValidationError(
            f"Payload starts with {messages[0].get('role')!r}, expected the system prompt",
            violation_type="missing_system_prompt",
            messages=messages,
            context={"role": messages[0].get("role")},
        )


def _validate_tool_call_consistency(messages: list[dict[str, _typing.Any]]) -> None:
    """Every tool result answers a call from the most recent tool-calling
    assistant message, and every call there is answered before the next one."""
    pending: dict[str, int] = {}  # id -> index of the assistant message

    def check_resolved(at: int) -> None:
        if pending:
            raise MessageValidationError(
                f"Tool calls {sorted(pending)} have no result before message {at}",
                violation_type="unresolved_tool_call",
                messages=messages,
                context={"index": at, "tool_call_ids": sorted(pending)},
            )

    for i, msg in enumerate(messages):
        role = msg.get("role", "")

        if role == "assistant" and msg.get("tool_calls"):
            check_resolved(i)
            pending = {tc.get("id"): i for tc in msg["tool_calls"] if tc.get("id")}

        if role == "tool":
            tc_id = msg.get("tool_call_id")
            if tc_id not in pending:
                raise MessageValidationError(
                    f"Tool result at {i} has orphan tool_call_id: {tc_id!r}",
                    violation_type="orphan_tool_result",
                    messages=messages,
                    context={"index": i, "tool_call_id": tc_id},
                )
            del pending[tc_id]

    check_resolved(len(messages))


def _validate_tool_result_placement(messages: list[dict[str, _typing.Any]]) -> None:
    """Tool results must directly follow their assistant message or another result."""
    for i, msg in enumerate(messages):
        if msg.get("role") != "tool":
            continue
        prev = messages[i - 1] if i > 0 else {}
        prev_ok = prev.get("role") == "tool" or (
            prev.get("role") == "assistant" and bool(prev.get("tool_calls"))
        )
        if not prev_ok:
            raise MessageValidationError(
                f"Tool result at {i} follows {prev.get('role')!r} instead of a tool call",
                violation_type="misplaced_tool_result",
                messages=messages,
                context={"index": i, "prev_role": prev.get("role")},
            )


def _validate_no_consecutive_assistants(messages: list[dict[str, _typing.Any]]) -> None:
    for i in range(1, len(messages)):
        if messages[i].get("role") == "assistant" and messages[i - 1].get("role") == "assistant":
            raise MessageValidationError(
                f"Two assistant messages in a row at index {i-1} and {i}",
                violation_type="consecutive_assistant_messages",
                messages=messages,
                context={"indices": [i - 1, i]},
            )


def _validate_no_empty_content(messages: list[dict[str, _typing.Any]]) -> None:
    for i, msg in enumerate(messages):
        role = msg.get("role", "")
        content = msg.get("content")
        if role not in ("user", "system", "tool"):
            continue
        if content is None or (isinstance(content, str) and not content.strip()):
            raise MessageValidationError(
                f"{role.capitalize()} message {i} has empty content",
                violation_type="empty_content",
                messages=messages,
                context={"index": i, "role": role},
            )


def find_orphan_tool_results(messages: list[dict[str, _typing.Any]]) -> list[int]:
    """Indices of tool messages with no matching call in an earlier assistant message."""
    seen: set[str] = set()
    orphans: list[int] = []
    for i, msg in enumerate(messages):
        if msg.get("role") == "assistant":
            for tc in msg.get("tool_calls") or []:
                if tc.get("id"):
                    seen.add(tc["id"])
        elif msg.get("role") == "tool" and msg.get("tool_call_id") not in seen:
            orphans.append(i)
    return orphans


def assert_valid_messages(
    messages: list[dict[str, _typing.Any]],
    *,
    context: str = "",
) -> None:
    """Assert that messages pass all validation checks.

    Use this in tests to validate message structure.

    Raises:
        AssertionError: If any validation fails.
    """
    try:
        validate_message_structure(messages, strict=True)
    except MessageValidationError as e:
        ctx = f" ({context})" if context else ""
        raise AssertionError(
            f"Message validation failed{ctx}: [{e.violation_type}] {e}\n"
            f"Messages: {_format_messages_for_error(messages)}"
        ) from e


def _format_messages_for_error(messages: list[dict[str, _typing.Any]]) -> str:
    lines = []
    for i, msg in enumerate(messages):
        role = msg.get("role", "?")
        content = msg.get("content", "")
        if isinstance(content, str) and len(content) > 100:
            content = content[:100] + "..."
        tool_calls = msg.get("tool_calls")
        tc_str = f" [tool_calls: {len(tool_calls)}]" if tool_calls else ""
        tc_id = msg.get("tool_call_id", "")
        tc_id_str = f" [tool_call_id: {tc_id}]" if tc_id else ""
        lines.append(f"  [{i}] {role}{tc_str}{tc_id_str}: {content!r}")
    return "\n".join(lines)
