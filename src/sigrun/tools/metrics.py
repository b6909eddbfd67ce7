"""
Per-tool dispatch statistics.

The tool processor records every call it hands to the runtime. Denied,
skipped and placeholder results never reach the runtime and are not counted.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import typing as _typing


@_dataclasses.dataclass
class ToolMetrics:
    """Dispatch counters for one tool name."""

    tool_name: str
    calls: int = 0
    failures: int = 0
    timeouts: int = 0
    total_ms: float = 0.0
    last_used: str | None = None

    @property
    def successes(self) -> int:
        return self.calls - self.failures

    @property
    def success_rate(self) -> float:
        """Percentage of calls that succeeded (0.0 when never called)."""
        if not self.calls:
            return 0.0
        return 100.0 * self.successes / self.calls

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.calls if self.calls else 0.0

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "timeouts": self.timeouts,
            "average_ms": round(self.average_ms, 2),
            "success_rate": round(self.success_rate, 1),
            "last_used": self.last_used,
        }


class MetricsCollector:
    """Accumulates ToolMetrics for every tool a loop dispatches."""

    def __init__(self) -> None:
        self._by_name: dict[str, ToolMetrics] = {}

    def record(
        self,
        tool_name: str,
        success: bool,
        duration_ms: float,
        *,
        timed_out: bool = False,
    ) -> None:
        """Count one dispatched call. A timeout is also a failure."""
        metrics = self._by_name.setdefault(tool_name, ToolMetrics(tool_name))
        metrics.calls += 1
        if not success or timed_out:
            metrics.failures += 1
        if timed_out:
            metrics.timeouts += 1
        metrics.total_ms += duration_ms
        metrics.last_used = _datetime.datetime.now(_datetime.UTC).isoformat()

    def get(self, tool_name: str) -> ToolMetrics | None:
        return self._by_name.get(tool_name)

    def to_dict(self) -> dict[str, dict[str, _typing.Any]]:
        """Snapshot keyed by tool name, for session persistence."""
        return {name: m.to_dict() for name, m in sorted(self._by_name.items())}

    def totals(self) -> dict[str, int]:
        calls = sum(m.calls for m in self._by_name.values())
        failures = sum(m.failures for m in self._by_name.values())
        return {
            "calls": calls,
            "failures": failures,
            "timeouts": sum(m.timeouts for m in self._by_name.values()),
            "tools_used": len(self._by_name),
        }
