"""
The agent loop state machine.

One invocation drives RUNNING ticks until the model answers (DONE), a
protocol error or the iteration ceiling ends it (FAILED), or breaking tool
calls need the user's permission (CONFIRMING). Suspension state lives in
the ConversationStore, so resume() works even after a process restart.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import enum as _enum
import inspect as _inspect
import logging as _logging
import typing as _typing

import sigrun.api.base as api_base
import sigrun.api.errors as api_errors
import sigrun.api.types as api_types
import sigrun.constants as _constants
import sigrun.core.confirmation as confirmation
import sigrun.core.conversation_store as conversation_store
import sigrun.core.message_formatter as message_formatter
import sigrun.core.prompts as prompts
import sigrun.core.streaming as streaming
import sigrun.core.tool_processor as tool_processor
import sigrun.core.types as types
import sigrun.logging as sigrun_logging
import sigrun.tools.definitions as tool_definitions
import sigrun.tools.runtime as tools_runtime

if _typing.TYPE_CHECKING:
    import sigrun.config as _config

_logger = _logging.getLogger(__name__)

ChunkCallback = _typing.Callable[[str], _typing.Any]
"""Receives streamed content text. May be a plain function or a coroutine function."""


class LoopStatus(_enum.Enum):
    RUNNING = "running"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


@_dataclasses.dataclass
class LoopState:
    """Transient state of one loop invocation. Discarded on return."""

    iteration: int = 0
    last_error: str | None = None
    """Most recent error, reported when the ceiling is hit."""

    carried_error: str | None = None
    """Error to describe in the next payload. Cleared once sent."""

    guidance: str | None = None
    """Extra system notice for the next payload. Cleared once sent."""

    streamed_content: str = ""
    tool_buffer: streaming.ToolCallBuffer = _dataclasses.field(
        default_factory=streaming.ToolCallBuffer
    )
    tool_results: list[types.ToolResult] = _dataclasses.field(default_factory=list)

    def record_error(self, error: str) -> None:
        self.last_error = error
        self.carried_error = error


@_dataclasses.dataclass
class AgentLoopResult:
    """Outcome of one run(), run_streaming() or resume() call."""

    status: LoopStatus
    response_text: str
    """Final answer, permission request, apology or ceiling message."""

    iterations: int = 0
    last_error: str | None = None
    tool_results: list[types.ToolResult] = _dataclasses.field(default_factory=list)

    @property
    def needs_confirmation(self) -> bool:
        return self.status is LoopStatus.CONFIRMING


class AgentLoopCallbacks(tool_processor.ToolProcessorCallbacks):
    """
    Optional loop notifications for UI integration.

    Different front ends override the hooks they care about; every method
    defaults to a no-op.
    """

    async def on_iteration_start(self, iteration: int) -> None:  # noqa: B027
        """Called at the start of each RUNNING tick (1-indexed)."""
        pass

    async def on_info(self, message: str) -> None:  # noqa: B027
        """Called for informational messages (retries, resets, summaries)."""
        pass

    async def on_confirmation_requested(self, message: str) -> None:  # noqa: B027
        """Called when the loop suspends waiting for permission."""
        pass


class AgentLoop:
    """
    Drives completions and tool calls for one conversation session.

    All entry points share one lock, so at most one invocation is in flight
    per loop instance.
    """

    def __init__(
        self,
        provider: api_base.CompletionProvider,
        tool_runtime: tools_runtime.ToolRuntime,
        *,
        store: conversation_store.ConversationStore | None = None,
        channel: confirmation.ConfirmationChannel | None = None,
        callbacks: AgentLoopCallbacks | None = None,
        logger: sigrun_logging.ConversationLogger | None = None,
        tool_schemas: list[api_types.ToolSchema] | None = None,
        system_prompt: str | None = None,
        project_path: str | None = None,
        model: str | None = None,
        temperature: float = _constants.DEFAULT_TEMPERATURE,
        max_iterations: int = _constants.DEFAULT_MAX_ITERATIONS,
        retry_backoff_seconds: float = _constants.DEFAULT_RETRY_BACKOFF_SECONDS,
        request_timeout_seconds: float | None = _constants.DEFAULT_REQUEST_TIMEOUT_SECONDS,
        general_tool_timeout_ms: int = _constants.DEFAULT_TOOL_TIMEOUT_MS,
        done_tool_timeout_ms: int = _constants.DEFAULT_DONE_TOOL_TIMEOUT_MS,
        breaking_tools: _typing.Collection[str] = _constants.DEFAULT_BREAKING_TOOLS,
        advertise_breaking_tools: bool = False,
        max_payload_size: int = _constants.DEFAULT_MAX_PAYLOAD_SIZE,
        max_messages: int = _constants.DEFAULT_MAX_MESSAGES,
        summary_max_tokens: int = _constants.DEFAULT_SUMMARY_MAX_TOKENS,
        recent_exchanges_kept: int = _constants.DEFAULT_RECENT_EXCHANGES_KEPT,
    ) -> None:
        """
        Args:
            provider: Completion provider.
            tool_runtime: Executes tool calls.
            store: History for this session (default: a new empty store).
            channel: Asked for permission synchronously. Without one the loop
                suspends in CONFIRMING and waits for resume().
            callbacks: Optional UI notifications.
            logger: Optional JSONL conversation logger.
            tool_schemas: Tools to advertise (default: the runtime's).
            advertise_breaking_tools: Also advertise the declared schemas of
                `breaking_tools` the schema list does not already hold.
            system_prompt: Replaces the built-in system prompt.
            project_path: Working-directory hint for the system prompt.
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self._provider = provider
        self._runtime = tool_runtime
        self._store = store if store is not None else conversation_store.ConversationStore()
        self._callbacks = callbacks or AgentLoopCallbacks()
        self._logger = logger
        if tool_schemas is None:
            tool_schemas = tool_runtime.tool_schemas()
        if advertise_breaking_tools:
            tool_schemas = tool_definitions.with_breaking_schemas(tool_schemas, breaking_tools)
        self._tool_schemas = tool_schemas
        self._system_prompt = system_prompt or prompts.get_system_prompt(self._tool_schemas)
        self._project_path = project_path
        self._model = model
        self._temperature = temperature
        self._max_iterations = max_iterations
        self._retry_backoff_seconds = retry_backoff_seconds
        self._request_timeout_seconds = request_timeout_seconds
        self._breaking_tools = frozenset(breaking_tools)
        self._max_payload_size = max_payload_size
        self._max_messages = max_messages
        self._summary_max_tokens = summary_max_tokens
        self._recent_exchanges_kept = recent_exchanges_kept
        self._last_summary: types.HistorySummary | None = None
        self._lock = _asyncio.Lock()

        self._processor = tool_processor.ToolCallProcessor(
            tool_runtime,
            channel=channel,
            general_timeout_ms=general_tool_timeout_ms,
            done_timeout_ms=done_tool_timeout_ms,
            logger=logger,
            callbacks=self._callbacks,
        )

    @classmethod
    def from_settings(
        cls,
        settings: _config.Settings,
        provider: api_base.CompletionProvider,
        tool_runtime: tools_runtime.ToolRuntime,
        **kwargs: _typing.Any,
    ) -> AgentLoop:
        """Build a loop with every tunable taken from settings."""
        options: dict[str, _typing.Any] = {
            "system_prompt": settings.system_prompt,
            "project_path": settings.project_path,
            "model": settings.provider.model,
            "temperature": settings.provider.temperature,
            "max_iterations": settings.loop.max_iterations,
            "retry_backoff_seconds": settings.loop.retry_backoff_seconds,
            "request_timeout_seconds": settings.loop.request_timeout_seconds,
            "general_tool_timeout_ms": settings.loop.general_tool_timeout_ms,
            "done_tool_timeout_ms": settings.loop.done_tool_timeout_ms,
            "breaking_tools": settings.loop.breaking_tools,
            "advertise_breaking_tools": settings.loop.advertise_breaking_tools,
            "max_payload_size": settings.history.max_payload_size,
            "max_messages": settings.history.max_messages,
            "summary_max_tokens": settings.history.summary_max_tokens,
            "recent_exchanges_kept": settings.history.recent_exchanges_kept,
        }
        options.update(kwargs)
        if "store" not in options:
            options["store"] = conversation_store.ConversationStore(settings.history.max_length)
        return cls(provider, tool_runtime, **options)

    @property
    def store(self) -> conversation_store.ConversationStore:
        return self._store

    @property
    def processor(self) -> tool_processor.ToolCallProcessor:
        return self._processor

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run(self, query: str) -> AgentLoopResult:
        """
        Answer a user query with the non-streaming loop.

        Raises:
            ConfigurationError: The provider is not usable. Raised before the
                query is added to history.
        """
        async with self._lock:
            self._start(query)
            return await self._drive(LoopState(), None)

    async def run_streaming(self, query: str, on_chunk: ChunkCallback) -> AgentLoopResult:
        """Like run(), but forwards content text to `on_chunk` as it arrives."""
        async with self._lock:
            self._start(query)
            return await self._drive(LoopState(), on_chunk)

    async def resume(
        self,
        user_reply: str,
        on_chunk: ChunkCallback | None = None,
    ) -> AgentLoopResult:
        """
        Continue after a CONFIRMING result with the user's yes/no reply.

        A reply containing "yes" grants permission: the pending calls run and
        their placeholders are replaced with the real results. Otherwise every
        placeholder becomes a denial result and the model is told to avoid
        mutating approaches. Either way the loop re-enters RUNNING.
        """
        async with self._lock:
            self._provider.validate_credentials()
            state = LoopState()

            pending = self._store.pending_confirmation()
            if pending is None:
                _logger.info("resume() called with no pending confirmation")
                await self._callbacks.on_info("No operations were waiting for permission.")
                self._append_user(user_reply)
                return await self._drive(state, on_chunk)

            granted = confirmation.is_affirmative(user_reply)
            calls = types.tool_calls_of(pending)
            if self._logger:
                self._logger.log_confirmation_resolved(granted, user_reply)

            if granted:
                outcome = await self._processor.process_tool_calls(
                    calls, self._breaking_tools, confirmed=True
                )
                results = outcome.results
                self._note_failures(state, results)
            else:
                results = tool_processor.denial_results(calls)
                state.guidance = _constants.PERMISSION_DENIED_GUIDANCE

            for result in results:
                self._store.resolve_placeholder(result.tool_call_id, result.output)
            state.tool_results.extend(results)

            self._append_user(user_reply)
            return await self._drive(state, on_chunk)

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _start(self, query: str) -> None:
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        self._provider.validate_credentials()

        # A new query abandons any permission request still open
        pending = self._store.pending_confirmation()
        if pending is not None:
            for result in tool_processor.denial_results(types.tool_calls_of(pending)):
                self._store.resolve_placeholder(result.tool_call_id, result.output)
            if self._logger:
                self._logger.log_confirmation_resolved(False, None)

        self._append_user(query)

    def _append_user(self, content: str) -> None:
        self._store.append({"role": "user", "content": content})
        if self._logger:
            self._logger.log_user_message(content)

    def _note_failures(self, state: LoopState, results: _typing.Sequence[types.ToolResult]) -> None:
        failures = [r for r in results if not r.success]
        if failures:
            state.record_error(failures[-1].output)

    async def _drive(self, state: LoopState, on_chunk: ChunkCallback | None) -> AgentLoopResult:
        while state.iteration < self._max_iterations:
            state.iteration += 1
            await self._callbacks.on_iteration_start(state.iteration)
            if self._logger:
                self._logger.log_iteration(state.iteration, streaming=on_chunk is not None)

            payload = await self._build_payload(state)
            try:
                if on_chunk is None:
                    response = await self._provider.complete(
                        payload,
                        self._tool_schemas,
                        model=self._model,
                        temperature=self._temperature,
                        timeout=self._request_timeout_seconds,
                    )
                else:
                    response = await self._stream_completion(payload, state, on_chunk)
            except api_errors.ProtocolValidationError as e:
                return self._reset(state, e)
            except api_errors.ProviderError as e:
                _logger.warning("Transient provider error (iteration %d): %s", state.iteration, e)
                state.record_error(str(e))
                if self._logger:
                    self._logger.log_error(str(e), context=f"iteration {state.iteration}")
                await self._callbacks.on_info(f"Provider error, retrying: {e}")
                await _asyncio.sleep(self._retry_backoff_seconds)
                continue

            if self._logger:
                self._logger.log_usage(response.usage.input_tokens, response.usage.output_tokens)

            result = await self._handle_response(state, response)
            if result is not None:
                return result

        return self._ceiling(state)

    async def _build_payload(self, state: LoopState) -> list[types.Message]:
        history = self._store.history()
        summary = None
        if len(history) > 2 and self._store.should_summarize(
            self._max_payload_size, self._max_messages
        ):
            summary = await self._store.summarize(
                self._provider,
                max_tokens=self._summary_max_tokens,
                keep_exchanges=self._recent_exchanges_kept,
                timeout=self._request_timeout_seconds,
            )
            if summary.summarized_count and summary is not self._last_summary:
                self._last_summary = summary
                if self._logger:
                    self._logger.log_history_summarized(
                        summary.summarized_count,
                        summary.file_references,
                        fallback=summary.fallback,
                    )
                await self._callbacks.on_info(
                    f"Summarized {summary.summarized_count} earlier messages"
                )

        payload = message_formatter.build(
            self._system_prompt,
            history,
            state.carried_error,
            summary=summary,
            guidance=state.guidance,
            project_path=self._project_path,
        )
        state.carried_error = None
        state.guidance = None
        return payload

    async def _stream_completion(
        self,
        payload: list[types.Message],
        state: LoopState,
        on_chunk: ChunkCallback,
    ) -> api_types.CompletionResponse:
        state.streamed_content = ""
        state.tool_buffer = streaming.ToolCallBuffer()
        finish_reason: str | None = None
        usage = api_types.Usage()

        async def handle(delta: api_types.StreamDelta) -> None:
            nonlocal finish_reason, usage
            if delta.content:
                state.streamed_content += delta.content
                forwarded = on_chunk(delta.content)
                if _inspect.isawaitable(forwarded):
                    await forwarded
            if delta.tool_call_fragments:
                state.tool_buffer.merge(delta.tool_call_fragments)
            if delta.finish_reason:
                finish_reason = delta.finish_reason
            if delta.usage:
                usage = delta.usage

        await self._provider.complete_streaming(
            payload,
            self._tool_schemas,
            on_delta=handle,
            model=self._model,
            temperature=self._temperature,
            timeout=self._request_timeout_seconds,
        )

        if not state.tool_buffer.is_complete():
            raise api_errors.TransientProviderError(
                "Stream ended with an incomplete tool call"
            )
        return api_types.CompletionResponse(
            content=state.streamed_content,
            tool_calls=state.tool_buffer.to_tool_calls(),
            finish_reason=finish_reason,
            usage=usage,
        )

    async def _handle_response(
        self,
        state: LoopState,
        response: api_types.CompletionResponse,
    ) -> AgentLoopResult | None:
        """Route one successful completion. Returns None to keep RUNNING."""
        self._store.append(response.to_message())
        if self._logger and response.content:
            self._logger.log_assistant_message(response.content)

        if not response.has_tool_calls:
            return self._finish(state, LoopStatus.DONE, response.content)

        calls = response.tool_calls
        done_call = next((c for c in calls if c.name == _constants.DONE_TOOL_NAME), None)
        if done_call is not None:
            return await self._handle_done(state, calls, done_call)

        outcome = await self._processor.process_tool_calls(calls, self._breaking_tools)

        if outcome.requires_confirmation:
            message = outcome.confirmation_message or ""
            for placeholder in tool_processor.placeholder_results(calls):
                self._store.append(placeholder.to_message())
            self._store.append({"role": "assistant", "content": message})
            if self._logger:
                self._logger.log_confirmation_requested(message, [c.id for c in calls])
            await self._callbacks.on_confirmation_requested(message)
            return self._finish(state, LoopStatus.CONFIRMING, message)

        for result in outcome.results:
            self._store.append(result.to_message())
        state.tool_results.extend(outcome.results)
        if outcome.denied:
            state.guidance = _constants.PERMISSION_DENIED_GUIDANCE
        else:
            self._note_failures(state, outcome.results)
        return None

    async def _handle_done(
        self,
        state: LoopState,
        calls: list[api_types.ToolCall],
        done_call: api_types.ToolCall,
    ) -> AgentLoopResult | None:
        # Siblings of a done call are discarded unexecuted
        siblings = [c for c in calls if c is not done_call]
        if siblings:
            _logger.info(
                "Discarding %d tool call(s) issued alongside %s",
                len(siblings),
                _constants.DONE_TOOL_NAME,
            )

        outcome = await self._processor.process_tool_calls([done_call], self._breaking_tools)
        done_result = outcome.results[0]
        skipped = {r.tool_call_id: r for r in tool_processor.skipped_results(siblings)}
        for call in calls:
            result = done_result if call is done_call else skipped[call.id]
            self._store.append(result.to_message())
        state.tool_results.append(done_result)

        if done_result.success:
            return self._finish(state, LoopStatus.DONE, done_result.output)

        state.record_error(done_result.output)
        return None

    def _reset(
        self,
        state: LoopState,
        error: api_errors.ProtocolValidationError,
    ) -> AgentLoopResult:
        _logger.error("Provider rejected the conversation, resetting history: %s", error)
        removed = self._store.sanitize()
        self._store.clear()
        self._store.append({"role": "system", "content": _constants.RESET_SYSTEM_MESSAGE})
        state.last_error = str(error)
        if self._logger:
            self._logger.log_error(str(error), context="protocol validation")
            self._logger.log_history_reset(str(error), removed_orphans=removed)
        return self._finish(state, LoopStatus.FAILED, _constants.RESET_APOLOGY)

    def _ceiling(self, state: LoopState) -> AgentLoopResult:
        _logger.warning("Iteration ceiling (%d) reached", self._max_iterations)
        if state.last_error:
            text = f"{_constants.CEILING_PREFIX}Error: {state.last_error}"
        else:
            text = _constants.CEILING_PREFIX + _constants.CEILING_NO_ERROR_HINT
        if self._logger:
            self._logger.log_error(text, context="iteration ceiling")
        return self._finish(state, LoopStatus.FAILED, text)

    def _finish(self, state: LoopState, status: LoopStatus, text: str) -> AgentLoopResult:
        return AgentLoopResult(
            status=status,
            response_text=text,
            iterations=state.iteration,
            last_error=state.last_error,
            tool_results=list(state.tool_results),
        )
