"""
Conversation history ownership: truncation, sanitization and summarization.

One ConversationStore exists per conversation session. Only its own methods
mutate the history, and only one agent loop at a time may use it.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import re as _re
import typing as _typing

import sigrun.api.base as api_base
import sigrun.api.errors as api_errors
import sigrun.constants as _constants
import sigrun.core.types as types

_logger = _logging.getLogger(__name__)

# Windows drive paths, or one-or-more "/segment" runs
_FILE_PATH_PATTERN = _re.compile(
    r'(?:[a-zA-Z]:\\[^\s:*?"<>|][^:*?"<>|]*)|(?:/[^\s/*?"<>|][^/*?"<>|]*)+'
)

_PATH_ARGUMENT_FIELDS = ("FilePath", "DirectoryPath", "TargetFile", "AbsolutePath")

_SUMMARY_SYSTEM_PROMPT = (
    "Your task is to summarize the following conversation between a user and an AI "
    "assistant. Focus on capturing the main topics discussed, key code snippets "
    "mentioned, important decisions made, and the overall context of the conversation. "
    "Keep the summary concise but informative. Make sure to preserve references to "
    "file paths and important code concepts."
)


def extract_file_references(messages: _typing.Iterable[types.Message]) -> list[str]:
    """
    Collect file-path-like tokens from message text and tool-call arguments.

    Returns unique tokens in first-seen order.
    """
    found: dict[str, None] = {}
    for message in messages:
        content = message.get("content")
        if isinstance(content, str):
            for match in _FILE_PATH_PATTERN.finditer(content):
                token = match.group(0)
                if "." in token and not token.endswith("/"):
                    found.setdefault(token, None)

        for call in types.tool_calls_of(message):
            try:
                args = call.parse_arguments()
            except ValueError:
                continue
            for field in _PATH_ARGUMENT_FIELDS:
                value = args.get(field)
                if isinstance(value, str) and value:
                    found.setdefault(value, None)
    return list(found)


def _content_text(message: types.Message) -> str:
    content = message.get("content")
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return _json.dumps(content)


def _format_for_summary(message: types.Message) -> dict[str, str]:
    if message.get("role") == "tool":
        return {"role": "assistant", "content": f"[Tool Response]: {_content_text(message)}"}
    if message.get("tool_calls"):
        names = [call.name for call in types.tool_calls_of(message)]
        return {
            "role": message.get("role", "assistant"),
            "content": f"[Tool Call]: {_json.dumps(names)}",
        }
    return {"role": message.get("role", "user"), "content": _content_text(message)}


def fallback_summary_text(messages: _typing.Sequence[types.Message]) -> str:
    """Deterministic summary built from message counts."""
    user_count = sum(1 for m in messages if m.get("role") == "user")
    assistant_count = sum(1 for m in messages if m.get("role") == "assistant")
    tool_count = sum(1 for m in messages if m.get("role") == "tool")
    return (
        f"Conversation summary (fallback): {user_count} user messages, "
        f"{assistant_count} assistant messages, {tool_count} tool interactions."
    )


class ConversationStore:
    """
    Ordered message history for one conversation.

    The history is bounded: every append truncates whole leading exchanges
    once the length exceeds `max_length`. Summarization never rewrites the
    stored history; it produces a HistorySummary for the payload only.
    """

    def __init__(self, max_length: int = _constants.DEFAULT_MAX_HISTORY_LENGTH) -> None:
        if max_length < 2:
            raise ValueError("max_length must be at least 2")
        self._max_length = max_length
        self._messages: list[types.Message] = []
        self._summary: types.HistorySummary | None = None
        self._summary_source: list[types.Message] | None = None

    @property
    def max_length(self) -> int:
        return self._max_length

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: types.Message) -> None:
        """Add a message to the end of history, then truncate."""
        self._messages.append(dict(message))
        self.truncate()

    def history(self) -> tuple[types.Message, ...]:
        """Current history, oldest first. Returned messages are copies."""
        return tuple(dict(m) for m in self._messages)

    def clear(self) -> None:
        """Drop the whole history. Only used as a recovery action."""
        self._messages = []
        self._summary = None
        self._summary_source = None

    def truncate(self, max_length: int | None = None) -> int:
        """
        Remove whole leading exchanges until the history is within bound.

        A cut is only made directly before a user message, so tool results
        always stay with the assistant message that requested them. At least
        floor(max/2)*2 messages are kept. If no safe cut exists nothing is
        removed.

        Returns:
            Number of messages removed.
        """
        limit = self._max_length if max_length is None else max_length
        length = len(self._messages)
        if length <= limit:
            return 0

        minimum_to_keep = (limit // 2) * 2
        excess = length - limit

        cut = 0
        for i in range(length - minimum_to_keep):
            if i + 1 < length and self._messages[i + 1].get("role") == "user":
                cut = i + 1
            if cut >= excess:
                break

        if cut > 0:
            self._messages = self._messages[cut:]
            _logger.debug("Truncated %d leading messages", cut)
        return cut

    def sanitize(self) -> int:
        """
        Remove tool messages whose tool_call_id matches no earlier tool call.

        Returns:
            Number of messages removed.
        """
        seen: set[str] = set()
        kept: list[types.Message] = []
        removed = 0
        for message in self._messages:
            role = message.get("role")
            if role == "assistant":
                for call in message.get("tool_calls") or []:
                    if call.get("id"):
                        seen.add(call["id"])
            elif role == "tool" and message.get("tool_call_id") not in seen:
                removed += 1
                continue
            kept.append(message)

        if removed:
            _logger.warning("Removed %d orphan tool messages from history", removed)
        self._messages = kept
        return removed

    # =========================================================================
    # Summarization
    # =========================================================================

    def estimate_payload_size(self) -> int:
        """Sum of content lengths plus tool-call name and argument lengths."""
        total = 0
        for message in self._messages:
            total += len(_content_text(message))
            for call in types.tool_calls_of(message):
                total += len(call.name) + len(call.arguments)
        return total

    def should_summarize(
        self,
        max_payload_size: int = _constants.DEFAULT_MAX_PAYLOAD_SIZE,
        max_messages: int = _constants.DEFAULT_MAX_MESSAGES,
    ) -> bool:
        """True once either the size or the count threshold is exceeded."""
        return (
            self.estimate_payload_size() > max_payload_size
            or len(self._messages) > max_messages
        )

    def summary_split_index(
        self,
        keep_exchanges: int = _constants.DEFAULT_RECENT_EXCHANGES_KEPT,
    ) -> int:
        """
        Index where the untouched recent part starts.

        That is the user message opening the `keep_exchanges`-th most recent
        exchange, so the recent part never begins mid-exchange. With fewer
        user messages than that, everything is recent and 0 is returned.
        """
        seen = 0
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].get("role") == "user":
                seen += 1
                if seen >= keep_exchanges:
                    return index
        return 0

    async def summarize(
        self,
        provider: api_base.CompletionProvider,
        *,
        max_tokens: int = _constants.DEFAULT_SUMMARY_MAX_TOKENS,
        keep_exchanges: int = _constants.DEFAULT_RECENT_EXCHANGES_KEPT,
        timeout: float | None = None,
    ) -> types.HistorySummary:
        """
        Compress the older part of history into a HistorySummary.

        The most recent `keep_exchanges` exchanges are excluded; callers send
        history[summarized_count:] alongside the summary. A summary of the
        same older messages is reused instead of asking the provider again.
        Provider failures fall back to a count-based summary, which is not
        reused.
        """
        if not self._messages:
            return types.HistorySummary(content=_constants.EMPTY_HISTORY_SUMMARY)

        split = self.summary_split_index(keep_exchanges)
        older = self._messages[:split]
        if not older:
            return types.HistorySummary(content=_constants.EMPTY_HISTORY_SUMMARY)

        if self._summary is not None and self._summary_source == older:
            _logger.debug("Reusing summary of %d messages", split)
            return self._summary

        file_references = extract_file_references(older)
        request = [{"role": "system", "content": _SUMMARY_SYSTEM_PROMPT}]
        request.extend(_format_for_summary(m) for m in older)

        try:
            response = await provider.complete(
                request, None, max_tokens=max_tokens, timeout=timeout
            )
        except api_errors.ProviderError as e:
            _logger.warning("Summarization failed, using fallback summary: %s", e)
            return types.HistorySummary(
                content=fallback_summary_text(older),
                file_references=file_references,
                summarized_count=len(older),
                fallback=True,
            )

        self._summary = types.HistorySummary(
            content=response.content or "Failed to generate conversation summary.",
            file_references=file_references,
            summarized_count=len(older),
        )
        self._summary_source = [dict(m) for m in older]
        return self._summary

    # =========================================================================
    # Confirmation suspension state
    # =========================================================================

    def pending_confirmation(self) -> types.Message | None:
        """
        The most recent tool-calling assistant message whose results still
        hold the permission placeholder, or None.
        """
        for index in range(len(self._messages) - 1, -1, -1):
            message = self._messages[index]
            if message.get("role") != "assistant" or not message.get("tool_calls"):
                continue
            ids = {call.get("id") for call in message["tool_calls"]}
            for later in self._messages[index + 1 :]:
                if (
                    later.get("role") == "tool"
                    and later.get("tool_call_id") in ids
                    and later.get("content") == _constants.PERMISSION_PLACEHOLDER
                ):
                    return dict(message)
            return None
        return None

    def resolve_placeholder(self, tool_call_id: str, output: str) -> bool:
        """
        Replace the placeholder result for `tool_call_id` in place.

        If no placeholder exists, the result is appended as a new tool
        message instead.

        Returns:
            True if a placeholder was replaced.
        """
        for message in self._messages:
            if (
                message.get("role") == "tool"
                and message.get("tool_call_id") == tool_call_id
                and message.get("content") == _constants.PERMISSION_PLACEHOLDER
            ):
                message["content"] = output
                return True

        _logger.debug("No placeholder for %s, appending result", tool_call_id)
        self.append(types.ToolResult(tool_call_id=tool_call_id, output=output).to_message())
        return False

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to JSON-serializable dict."""
        return {
            "max_length": self._max_length,
            "messages": [dict(m) for m in self._messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, _typing.Any]) -> ConversationStore:
        """Restore a store saved with to_dict(). The history is not re-truncated."""
        store = cls(max_length=data.get("max_length", _constants.DEFAULT_MAX_HISTORY_LENGTH))
        store._messages = [dict(m) for m in data.get("messages", [])]
        return store
