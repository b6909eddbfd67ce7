"""
OpenAI-compatible chat completion provider.

Talks to any endpoint implementing `POST {base_url}/chat/completions`
(OpenAI, Azure-style gateways, local servers). HTTP failures are mapped
onto the structured error types in `sigrun.api.errors`.
"""

from __future__ import annotations

import asyncio as _asyncio
import json as _json
import logging as _logging
import time as _time
import typing as _typing

import httpx as _httpx

import sigrun.api.base as base
import sigrun.api.credentials as credentials
import sigrun.api.errors as errors
import sigrun.api.types as types
import sigrun.constants as _constants

_logger = _logging.getLogger(__name__)

_PROTOCOL_STATUS_CODES = frozenset({400, 422})
_AUTH_STATUS_CODES = frozenset({401, 403})
_PROTOCOL_ERROR_TYPES = frozenset({"invalid_request_error"})


def _describe_error_body(body: _typing.Any) -> tuple[str | None, str]:
    """Extract (error type, message) from an OpenAI-style error body."""
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            err_type = err.get("type") or err.get("code")
            return (str(err_type) if err_type else None), str(err.get("message", ""))
        if isinstance(err, str):
            return None, err
    if isinstance(body, str):
        return None, body[:500]
    return None, ""


def classify_http_error(status_code: int, body: _typing.Any) -> errors.ProviderError:
    """
    Map an HTTP error response onto the provider error taxonomy.

    Args:
        status_code: HTTP status of the response
        body: Parsed JSON body, or raw text if it was not JSON

    Returns:
        ProtocolValidationError for 400/422 or an invalid_request_error body,
        ProviderAuthError for 401/403, TransientProviderError otherwise.
    """
    err_type, detail = _describe_error_body(body)
    label = f"{status_code} {err_type}" if err_type else str(status_code)
    message = f"{label}: {detail}" if detail else label

    if status_code in _PROTOCOL_STATUS_CODES or err_type in _PROTOCOL_ERROR_TYPES:
        return errors.ProtocolValidationError(message, status_code=status_code, body=body)
    if status_code in _AUTH_STATUS_CODES:
        return errors.ProviderAuthError(message, status_code=status_code, body=body)
    return errors.TransientProviderError(message, status_code=status_code, body=body)


def _decode_body(raw: bytes) -> _typing.Any:
    try:
        return _json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return raw.decode("utf-8", errors="replace")


class OpenAICompatibleProvider(base.CompletionProvider):
    """
    Chat completion provider for OpenAI-compatible HTTP APIs.

    Uses httpx.AsyncClient; pass `transport` to substitute a mock transport
    in tests.
    """

    def __init__(
        self,
        *,
        base_url: str = _constants.DEFAULT_BASE_URL,
        model: str = _constants.DEFAULT_MODEL,
        temperature: float = _constants.DEFAULT_TEMPERATURE,
        api_key: str | None = None,
        credentials_path: str | None = None,
        timeout: float = _constants.DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: _httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            base_url: API root, e.g. 'https://api.openai.com/v1'.
            model: Default model for requests.
            temperature: Default sampling temperature.
            api_key: API key. Falls back to credentials_path, then OPENAI_API_KEY.
            credentials_path: Path to JSON file containing {"api_key": "..."}.
            timeout: Default request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._temperature = temperature
        self._timeout = timeout
        self._api_key = credentials.resolve_api_key(api_key, credentials_path)

        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "User-Agent": "Sigrun/1.0",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        self._client = _httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        """Base URL of the API."""
        return self._base_url

    def validate_credentials(self) -> None:
        if not self._api_key:
            raise errors.ConfigurationError(
                f"No API key configured. Set {credentials.API_KEY_ENV_VAR} "
                "or provider.credentials_path."
            )

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
        """Send messages and get a complete response."""
        payload = self._build_payload(
            messages,
            tools,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=False,
        )
        limit = timeout or self._timeout

        # httpx bounds each phase; wait_for bounds the whole round trip
        try:
            response = await _asyncio.wait_for(
                self._client.post("/chat/completions", json=payload, timeout=limit),
                timeout=limit,
            )
        except _httpx.TimeoutException as e:
            raise errors.TransientProviderError(f"Request timed out: {e}") from e
        except _httpx.TransportError as e:
            raise errors.TransientProviderError(f"Network error: {e}") from e
        except TimeoutError as e:
            raise errors.TransientProviderError(f"Request exceeded {limit}s") from e

        if response.status_code >= 400:
            raise classify_http_error(response.status_code, _decode_body(response.content))

        try:
            data = response.json()
        except ValueError as e:
            raise errors.TransientProviderError(f"Malformed response body: {e}") from e
        return self._parse_response(data)

    async def stream(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[types.ToolSchema] | None = None,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> _typing.AsyncIterator[types.StreamDelta]:
        """Stream messages and yield deltas."""
        payload = self._build_payload(
            messages,
            tools,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True,
        )
        limit = timeout or self._timeout
        deadline = _time.monotonic() + limit

        try:
            async with self._client.stream(
                "POST",
                "/chat/completions",
                json=payload,
                timeout=limit,
            ) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    raise classify_http_error(response.status_code, _decode_body(raw))

                async for line in response.aiter_lines():
                    # A slow drip of lines never trips the per-read timeout
                    if _time.monotonic() > deadline:
                        raise errors.TransientProviderError(f"Stream exceeded {limit}s")
                    if not line.startswith("data: "):
                        continue

                    data_str = line[6:]  # Remove "data: " prefix
                    if data_str.strip() == "[DONE]":
                        break

                    try:
                        data = _json.loads(data_str)
                    except _json.JSONDecodeError:
                        _logger.debug("Skipping undecodable stream line: %r", data_str[:200])
                        continue

                    delta = self._parse_stream_chunk(data)
                    if delta is not None:
                        yield delta
        except _httpx.TimeoutException as e:
            raise errors.TransientProviderError(f"Stream timed out: {e}") from e
        except _httpx.TransportError as e:
            raise errors.TransientProviderError(f"Network error during stream: {e}") from e

    def _build_payload(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[types.ToolSchema] | None,
        *,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
        stream: bool,
    ) -> dict[str, _typing.Any]:
        """Build the request payload."""
        payload: dict[str, _typing.Any] = {
            "model": model or self._model,
            "messages": messages,
            "temperature": self._temperature if temperature is None else temperature,
            "stream": stream,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        # Request usage data in streaming mode (OpenAI extension)
        if stream:
            payload["stream_options"] = {"include_usage": True}

        if tools:
            payload["tools"] = [t.to_openai_format() for t in tools]

        return payload

    def _parse_response(self, data: dict[str, _typing.Any]) -> types.CompletionResponse:
        """Parse a non-streaming response."""
        choices = data.get("choices") or []
        if not choices:
            raise errors.TransientProviderError("Response contained no choices", body=data)

        choice = choices[0]
        message = choice.get("message") or {}
        content = message.get("content") or ""

        tool_calls = [
            types.ToolCall.from_message_format(tc) for tc in message.get("tool_calls") or []
        ]

        usage_data = data.get("usage") or {}
        usage = types.Usage(
            input_tokens=usage_data.get("prompt_tokens", 0),
            output_tokens=usage_data.get("completion_tokens", 0),
        )

        return types.CompletionResponse(
            id=data.get("id", ""),
            content=content,
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason"),
            usage=usage,
        )

    def _parse_stream_chunk(self, data: dict[str, _typing.Any]) -> types.StreamDelta | None:
        """Convert one SSE chunk into a StreamDelta (None if it carries nothing)."""
        delta = types.StreamDelta()

        for choice in data.get("choices") or []:
            chunk = choice.get("delta") or {}

            if chunk.get("content"):
                delta.content = (delta.content or "") + chunk["content"]

            for tc in chunk.get("tool_calls") or []:
                func = tc.get("function") or {}
                delta.tool_call_fragments.append(
                    types.ToolCallFragment(
                        index=tc.get("index", 0),
                        id=tc.get("id") or None,
                        name=func.get("name") or None,
                        arguments=func.get("arguments") or None,
                    )
                )

            if choice.get("finish_reason"):
                delta.finish_reason = choice["finish_reason"]

        usage_data = data.get("usage")
        if usage_data:
            delta.usage = types.Usage(
                input_tokens=usage_data.get("prompt_tokens", 0),
                output_tokens=usage_data.get("completion_tokens", 0),
            )

        if (
            delta.content is None
            and not delta.tool_call_fragments
            and delta.finish_reason is None
            and delta.usage is None
        ):
            return None
        return delta

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
