"""
Tool call batch processing: classification, confirmation and dispatch.

The processor resolves every tool call of a batch into exactly one
ToolResult, in call order. Tool failures never propagate; they become
failed results that the loop reports back to the model.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import logging as _logging
import time as _time
import typing as _typing

import sigrun.api.types as api_types
import sigrun.constants as _constants
import sigrun.core.confirmation as confirmation
import sigrun.core.types as types
import sigrun.logging as sigrun_logging
import sigrun.tools.base as tools_base
import sigrun.tools.definitions as definitions
import sigrun.tools.metrics as tool_metrics
import sigrun.tools.runtime as runtime

_logger = _logging.getLogger(__name__)

DENIED_TEMPLATE = "Permission denied by user: {name} was not executed."
SKIPPED_TEMPLATE = "Skipped: {name} was not executed because the task was marked done."
ERROR_TEMPLATE = "Error executing tool: {error}"


class ToolProcessorCallbacks:
    """Optional per-call notifications. All methods default to no-ops."""

    async def on_tool_call(self, tool_call: types.ToolCallDisplay) -> None:  # noqa: B027
        pass

    async def on_tool_result(self, result: types.ToolResultDisplay) -> None:  # noqa: B027
        pass


@_dataclasses.dataclass
class ToolBatchOutcome:
    """What happened to one batch of tool calls."""

    results: list[types.ToolResult] = _dataclasses.field(default_factory=list)
    """One result per input call, in input order. Empty while awaiting confirmation."""

    requires_confirmation: bool = False
    """The batch holds breaking calls and the answer must come from resume()."""

    confirmation_message: str | None = None
    denied: bool = False

    @property
    def failures(self) -> list[types.ToolResult]:
        return [r for r in self.results if not r.success]


def describe_breaking_calls(calls: _typing.Sequence[api_types.ToolCall]) -> str:
    """The permission request text enumerating what each breaking call would do."""
    lines = []
    for call in calls:
        try:
            args = call.parse_arguments()
        except ValueError:
            args = {}
        lines.append(definitions.describe_call(call.name, args) + "\n")
    return _constants.PERMISSION_HEADER + "".join(lines) + _constants.PERMISSION_FOOTER


def denial_results(calls: _typing.Sequence[api_types.ToolCall]) -> list[types.ToolResult]:
    return [
        types.ToolResult(call.id, DENIED_TEMPLATE.format(name=call.name), success=False)
        for call in calls
    ]


def skipped_results(calls: _typing.Sequence[api_types.ToolCall]) -> list[types.ToolResult]:
    """Results for calls discarded because `done` was called in the same batch."""
    return [
        types.ToolResult(call.id, SKIPPED_TEMPLATE.format(name=call.name), success=False)
        for call in calls
    ]


def placeholder_results(calls: _typing.Sequence[api_types.ToolCall]) -> list[types.ToolResult]:
    return [
        types.ToolResult(call.id, _constants.PERMISSION_PLACEHOLDER, success=False)
        for call in calls
    ]


class ToolCallProcessor:
    """
    Processes one batch of model-requested tool calls.

    Tool metrics are always collected during dispatch.
    """

    def __init__(
        self,
        tool_runtime: runtime.ToolRuntime,
        *,
        channel: confirmation.ConfirmationChannel | None = None,
        general_timeout_ms: int = _constants.DEFAULT_TOOL_TIMEOUT_MS,
        done_timeout_ms: int = _constants.DEFAULT_DONE_TOOL_TIMEOUT_MS,
        logger: sigrun_logging.ConversationLogger | None = None,
        callbacks: ToolProcessorCallbacks | None = None,
    ) -> None:
        """
        Args:
            tool_runtime: Executes the calls.
            channel: Asked before breaking calls run. None (or a
                DeferredConfirmation) suspends the batch instead.
            general_timeout_ms: Dispatch timeout for ordinary tools.
            done_timeout_ms: Dispatch timeout for the done tool.
            logger: Optional conversation logger.
            callbacks: Optional per-call notifications.
        """
        self._runtime = tool_runtime
        self._channel = channel or confirmation.DeferredConfirmation()
        self._general_timeout_ms = general_timeout_ms
        self._done_timeout_ms = done_timeout_ms
        self._logger = logger
        self._callbacks = callbacks or ToolProcessorCallbacks()
        self._metrics = tool_metrics.MetricsCollector()

    @property
    def metrics(self) -> tool_metrics.MetricsCollector:
        return self._metrics

    @property
    def defers_confirmation(self) -> bool:
        return isinstance(self._channel, confirmation.DeferredConfirmation)

    async def process_tool_calls(
        self,
        calls: _typing.Sequence[api_types.ToolCall],
        breaking_names: _typing.Collection[str],
        *,
        confirmed: bool = False,
    ) -> ToolBatchOutcome:
        """
        Classify, confirm and dispatch a batch.

        Args:
            calls: The batch, in model order.
            breaking_names: Names that need user confirmation.
            confirmed: The user already approved this batch.

        Returns:
            ToolBatchOutcome. Unless confirmation is pending, it holds exactly
            one result per call in input order. A denied batch resolves every
            call to a denial result without dispatching anything.
        """
        breaking = [call for call in calls if call.name in breaking_names]

        if breaking and not confirmed:
            message = describe_breaking_calls(breaking)
            if self.defers_confirmation:
                return ToolBatchOutcome(requires_confirmation=True, confirmation_message=message)

            granted = await self._channel.ask(message)
            if self._logger:
                self._logger.log_confirmation_resolved(granted)
            if not granted:
                _logger.info("User denied %d breaking tool call(s)", len(breaking))
                return ToolBatchOutcome(
                    results=denial_results(calls),
                    confirmation_message=message,
                    denied=True,
                )

        results = [await self.dispatch(call, breaking=call in breaking) for call in calls]
        return ToolBatchOutcome(results=results)

    async def dispatch(
        self,
        call: api_types.ToolCall,
        *,
        breaking: bool = False,
    ) -> types.ToolResult:
        """Execute one call. Never raises; failures become failed results."""
        try:
            args = call.parse_arguments()
        except ValueError as e:
            if self._logger:
                self._logger.log_tool_call(call.name, call.arguments, tool_id=call.id)
            return await self._make_error_result(call, f"invalid arguments: {e}")

        if self._logger:
            self._logger.log_tool_call(call.name, args, tool_id=call.id)
        await self._callbacks.on_tool_call(
            types.ToolCallDisplay(
                tool_name=call.name,
                tool_input=args,
                tool_id=call.id,
                requires_confirmation=breaking,
            )
        )

        timeout_ms = (
            self._done_timeout_ms
            if call.name == _constants.DONE_TOOL_NAME
            else self._general_timeout_ms
        )
        start_time = _time.perf_counter()
        try:
            output = await self._runtime.execute(call.name, args, timeout_ms)
        except Exception as e:  # Tool runtimes are external code; any failure is local
            duration_ms = (_time.perf_counter() - start_time) * 1000
            self._metrics.record(
                call.name,
                False,
                duration_ms,
                timed_out=isinstance(e, tools_base.ToolTimeoutError),
            )
            if not isinstance(e, tools_base.ToolExecutionError):
                _logger.debug("Tool %s raised unexpectedly", call.name, exc_info=True)
            return await self._make_error_result(call, str(e) or type(e).__name__, duration_ms)

        duration_ms = (_time.perf_counter() - start_time) * 1000
        self._metrics.record(call.name, True, duration_ms)
        result = types.ToolResult(call.id, str(output), success=True)
        await self._finish(call, result, duration_ms)
        return result

    async def _make_error_result(
        self,
        call: api_types.ToolCall,
        error: str,
        duration_ms: float | None = None,
    ) -> types.ToolResult:
        result = types.ToolResult(call.id, ERROR_TEMPLATE.format(error=error), success=False)
        await self._finish(call, result, duration_ms)
        return result

    async def _finish(
        self,
        call: api_types.ToolCall,
        result: types.ToolResult,
        duration_ms: float | None,
    ) -> None:
        if self._logger:
            self._logger.log_tool_result(
                tool_name=call.name,
                success=result.success,
                output=result.output,
                tool_id=call.id,
                duration_ms=duration_ms,
            )
        await self._callbacks.on_tool_result(types.ToolResultDisplay(call.name, result))
