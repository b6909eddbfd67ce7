"""
Accumulation of streamed tool-call fragments.

Streaming providers send a tool call in pieces keyed by a positional index;
usually only the first piece carries the call id and name. The buffer merges
pieces by slot and reports completeness only when every slot is dispatchable.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import json as _json

import sigrun.api.types as api_types


@_dataclasses.dataclass
class _Slot:
    id: str
    name: str = ""
    arguments: str = ""

    def is_complete(self) -> bool:
        if not self.name:
            return False
        try:
            _json.loads(self.arguments or "{}")
        except ValueError:
            return False
        return True


class ToolCallBuffer:
    """Merge-by-slot buffer for streamed tool calls."""

    def __init__(self) -> None:
        self._slots: dict[int, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def merge(self, fragments: list[api_types.ToolCallFragment]) -> None:
        """
        Merge fragments into their slots.

        A slot is created on the first fragment for its index, with the
        fragment's id or `call_<n>` when none was sent. Name and argument
        pieces are concatenated in arrival order.
        """
        for fragment in fragments:
            slot = self._slots.get(fragment.index)
            if slot is None:
                slot = _Slot(id=fragment.id or f"call_{len(self._slots)}")
                self._slots[fragment.index] = slot
            if fragment.name:
                slot.name += fragment.name
            if fragment.arguments:
                slot.arguments += fragment.arguments

    def is_complete(self) -> bool:
        """True when every buffered call has a name and parseable arguments."""
        return all(slot.is_complete() for slot in self._slots.values())

    def to_tool_calls(self) -> list[api_types.ToolCall]:
        """Buffered calls in index order."""
        return [
            api_types.ToolCall(id=slot.id, name=slot.name, arguments=slot.arguments or "{}")
            for _, slot in sorted(self._slots.items())
        ]

    def clear(self) -> None:
        self._slots.clear()
