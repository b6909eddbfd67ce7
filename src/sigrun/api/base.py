"""
Abstract base class for completion providers.

The agent loop only talks to this interface. Implementations must raise
the structured errors from `sigrun.api.errors` so the loop can tell a
protocol rejection apart from a transient failure.
"""

from __future__ import annotations

import abc as _abc
import inspect as _inspect
import logging as _logging
import time as _time
import typing as _typing

import sigrun.api.errors as errors
import sigrun.api.types as types

_logger = _logging.getLogger(__name__)

DeltaCallback = _typing.Callable[[types.StreamDelta], _typing.Any]
"""Receives each streamed delta. May be a plain function or a coroutine function."""


class CompletionProvider(_abc.ABC):
    """
    Abstract base for chat completion providers.

    Implementations handle the specifics of each provider's API while
    presenting a unified interface.
    """

    @property
    @_abc.abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'openai')."""
        ...

    @property
    @_abc.abstractmethod
    def model(self) -> str:
        """Default model used when a call does not name one."""
        ...

    def validate_credentials(self) -> None:
        """
        Check that the provider is usable before a loop starts.

        Raises:
            ConfigurationError: If credentials or endpoint settings are missing.
        """
        return None

    @_abc.abstractmethod
    async def complete(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[types.ToolSchema] | None = None,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> types.CompletionResponse:
        """
        Send messages and get a complete response (non-streaming).

        Args:
            messages: Role-tagged messages in OpenAI chat format
            tools: Tool schemas the model may call
            model: Model override (defaults to self.model)
            temperature: Sampling temperature override
            max_tokens: Optional response size cap
            timeout: Overall request timeout in seconds

        Returns:
            Complete response with content, tool calls and usage

        Raises:
            ProtocolValidationError: Request rejected as structurally invalid
            TransientProviderError: Network, timeout, rate limit or server failure
        """
        ...

    @_abc.abstractmethod
    def stream(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[types.ToolSchema] | None = None,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> _typing.AsyncIterator[types.StreamDelta]:
        """
        Stream a completion and yield deltas as they arrive.

        Note: This method is not async itself, but returns an async iterator.
        Implementations should use 'async def' which returns an async generator.
        Raises the same errors as complete().
        """
        ...

    async def complete_streaming(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[types.ToolSchema] | None = None,
        *,
        on_delta: DeltaCallback,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Drive stream() and hand every delta to `on_delta` as it arrives."""
        async for delta in self.stream(
            messages,
            tools,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        ):
            result = on_delta(delta)
            if _inspect.isawaitable(result):
                await result

    async def test_connection(self) -> dict[str, _typing.Any]:
        """
        Test the connection to the provider.

        Returns:
            Dict with status, latency, and any errors
        """
        start = _time.perf_counter()
        try:
            self.validate_credentials()
            response = await self.complete(
                messages=[{"role": "user", "content": "Say 'ok'"}],
                max_tokens=10,
            )
            latency_ms = int((_time.perf_counter() - start) * 1000)
            return {
                "status": "ok",
                "provider": self.name,
                "model": self.model,
                "latency_ms": latency_ms,
                "response": response.content[:50],
            }
        except errors.SigrunError as e:
            latency_ms = int((_time.perf_counter() - start) * 1000)
            _logger.debug("Connection test failed: %s", e)
            return {
                "status": "error",
                "provider": self.name,
                "model": self.model,
                "latency_ms": latency_ms,
                "error": str(e),
            }

    async def close(self) -> None:  # noqa: B027
        """Release network resources. Optional, default no-op."""
        pass
