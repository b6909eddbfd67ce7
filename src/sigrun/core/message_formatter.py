"""
Per-iteration payload assembly.

The formatter turns the stored history into the exact message list sent to
the completion provider: system prompt first, then an optional guidance
notice, an optional history summary, an optional single-use error notice,
and finally the (possibly summarized) history.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import sigrun.constants as _constants
import sigrun.core.message_validators as message_validators
import sigrun.core.types as types

_logger = _logging.getLogger(__name__)

# Content prefixes that mark a message as system-authored when its role is lost
_SYSTEM_MARKERS = (
    "You are Sigrun",
    _constants.RESET_SYSTEM_MESSAGE,
    "Summary of earlier conversation:",
    "Permission was denied by the user.",
)

# Keys that are bookkeeping only and must not reach the provider
_INTERNAL_KEYS = ("file_references",)


def infer_role(message: types.Message) -> str:
    """Best-effort role for a message that lost its `role` field."""
    if message.get("tool_call_id"):
        return "tool"
    if message.get("tool_calls"):
        return "assistant"
    content = message.get("content")
    if isinstance(content, str) and content.startswith(_SYSTEM_MARKERS):
        return "system"
    return "user"


def repair_message(message: types.Message) -> types.Message:
    """Return a copy with a role filled in and provider-rejected fields removed."""
    repaired = {k: v for k, v in message.items() if k not in _INTERNAL_KEYS}
    if not repaired.get("role"):
        repaired["role"] = infer_role(repaired)
        _logger.debug("Inferred missing role %r", repaired["role"])
    if "tool_calls" in repaired and not repaired["tool_calls"]:
        del repaired["tool_calls"]
    if repaired.get("content") is None:
        repaired["content"] = ""
    return repaired


def error_notice(error: str) -> types.Message:
    """The synthetic user message describing the previous step's failure."""
    return {"role": "user", "content": _constants.ERROR_NOTICE_TEMPLATE.format(error=error)}


def build(
    system_prompt: str,
    history: _typing.Sequence[types.Message],
    last_error: str | None = None,
    *,
    summary: types.HistorySummary | None = None,
    guidance: str | None = None,
    project_path: str | None = None,
    validate: bool = False,
) -> list[types.Message]:
    """
    Assemble the payload for one completion call.

    Args:
        system_prompt: Base system prompt
        history: Stored history, oldest first
        last_error: Error from the previous tick, if any. The caller clears
            it after this call so the notice is sent only once.
        summary: Replaces history[:summary.summarized_count] when given
        guidance: Extra system notice placed right after the system prompt
        project_path: Working-directory hint appended to the system prompt
        validate: Run the structural validators on the result

    Returns:
        New list of messages. The stored history is not modified.

    Raises:
        MessageValidationError: If validate=True and the payload is malformed.
    """
    prompt = system_prompt
    if project_path:
        prompt = f"{prompt}\n\n{_constants.PROJECT_PATH_HINT_TEMPLATE.format(path=project_path)}"

    payload: list[types.Message] = [{"role": "system", "content": prompt}]

    if guidance:
        payload.append({"role": "system", "content": guidance})

    recent: _typing.Sequence[types.Message] = history
    if summary is not None and summary.summarized_count > 0:
        payload.append(repair_message(summary.to_message()))
        recent = history[summary.summarized_count :]

    if last_error:
        payload.append(error_notice(last_error))

    payload.extend(repair_message(m) for m in recent)

    if validate:
        message_validators.validate_message_structure(payload, strict=True)
    return payload
