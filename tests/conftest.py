"""
Shared pytest fixtures for Sigrun tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import json as _json
import os as _os
import pathlib as _pathlib
import typing as _typing
import unittest.mock as _mock

import pytest as _pytest

import sigrun.api.base as api_base
import sigrun.api.types as api_types
import sigrun.config as config
import sigrun.session as session
import sigrun.tools.base as tools_base
import sigrun.tools.runtime as tools_runtime

# Environment keys that should be cleared for isolated tests
ENV_KEYS_TO_CLEAR = [
    "OPENAI_API_KEY",
    "SIGRUN_PROVIDER__MODEL",
    "SIGRUN_PROVIDER__API_KEY",
    "SIGRUN_PROVIDER__BASE_URL",
    "SIGRUN_LOOP__MAX_ITERATIONS",
    "SIGRUN_CONFIG_DIR",
    "SIGRUN_ENV_FILE",
]

SUMMARY_REQUEST_MARKER = "Your task is to summarize"


# =============================================================================
# Scripted collaborators
# =============================================================================


def tool_call(
    name: str,
    arguments: dict[str, _typing.Any] | str | None = None,
    call_id: str = "call_1",
) -> api_types.ToolCall:
    """Build a ToolCall with JSON-encoded arguments."""
    if arguments is None:
        raw = "{}"
    elif isinstance(arguments, str):
        raw = arguments
    else:
        raw = _json.dumps(arguments)
    return api_types.ToolCall(id=call_id, name=name, arguments=raw)


def text_response(content: str) -> api_types.CompletionResponse:
    return api_types.CompletionResponse(
        content=content,
        finish_reason="stop",
        usage=api_types.Usage(input_tokens=10, output_tokens=5),
    )


def tool_response(*calls: api_types.ToolCall, content: str = "") -> api_types.CompletionResponse:
    return api_types.CompletionResponse(
        content=content,
        tool_calls=list(calls),
        finish_reason="tool_calls",
        usage=api_types.Usage(input_tokens=10, output_tokens=5),
    )


ScriptStep = api_types.CompletionResponse | Exception | list[api_types.StreamDelta]


class ScriptedProvider(api_base.CompletionProvider):
    """
    Provider that replays a fixed script of responses.

    Each step is a CompletionResponse, an exception to raise, or (for
    streaming) a list of StreamDeltas. Summarization requests are answered
    with `summary_text` without consuming a step.
    """

    def __init__(
        self,
        script: _typing.Iterable[ScriptStep] = (),
        *,
        summary_text: str = "Earlier the user asked about files.",
        summary_error: Exception | None = None,
        credentials_error: Exception | None = None,
    ) -> None:
        self._script = list(script)
        self.summary_text = summary_text
        self.summary_error = summary_error
        self.credentials_error = credentials_error
        self.calls: list[list[dict[str, _typing.Any]]] = []
        self.tool_names: list[list[str]] = []
        self.summary_requests: list[list[dict[str, _typing.Any]]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def model(self) -> str:
        return "scripted-model"

    @property
    def remaining(self) -> int:
        return len(self._script)

    def validate_credentials(self) -> None:
        if self.credentials_error is not None:
            raise self.credentials_error

    def _next(self) -> ScriptStep:
        if not self._script:
            raise AssertionError("ScriptedProvider ran out of scripted responses")
        step = self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    def _is_summary_request(self, messages: list[dict[str, _typing.Any]]) -> bool:
        first = messages[0].get("content", "") if messages else ""
        return isinstance(first, str) and first.startswith(SUMMARY_REQUEST_MARKER)

    async def complete(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[api_types.ToolSchema] | None = None,
        *,
        model: str | None = None,  # noqa: ARG002
        temperature: float | None = None,  # noqa: ARG002
        max_tokens: int | None = None,  # noqa: ARG002
        timeout: float | None = None,  # noqa: ARG002
    ) -> api_types.CompletionResponse:
        if self._is_summary_request(messages):
            self.summary_requests.append([dict(m) for m in messages])
            if self.summary_error is not None:
                raise self.summary_error
            return text_response(self.summary_text)

        self.calls.append([dict(m) for m in messages])
        self.tool_names.append([t.name for t in tools or ()])
        step = self._next()
        assert isinstance(step, api_types.CompletionResponse), "expected a non-streaming step"
        return step

    async def stream(
        self,
        messages: list[dict[str, _typing.Any]],
        tools: list[api_types.ToolSchema] | None = None,
        *,
        model: str | None = None,  # noqa: ARG002
        temperature: float | None = None,  # noqa: ARG002
        max_tokens: int | None = None,  # noqa: ARG002
        timeout: float | None = None,  # noqa: ARG002
    ) -> _typing.AsyncIterator[api_types.StreamDelta]:
        self.calls.append([dict(m) for m in messages])
        self.tool_names.append([t.name for t in tools or ()])
        step = self._next()
        if isinstance(step, api_types.CompletionResponse):
            # Replay a whole response as content and per-call fragments
            if step.content:
                yield api_types.StreamDelta(content=step.content)
            for index, call in enumerate(step.tool_calls):
                yield api_types.StreamDelta(
                    tool_call_fragments=[
                        api_types.ToolCallFragment(
                            index=index, id=call.id, name=call.name, arguments=call.arguments
                        )
                    ]
                )
            yield api_types.StreamDelta(finish_reason=step.finish_reason, usage=step.usage)
            return
        for delta in step:
            yield delta

    async def close(self) -> None:
        self.closed = True


class FakeRuntime(tools_runtime.ToolRuntime):
    """
    Tool runtime with canned per-name outputs.

    A value that is an exception is raised; anything else is returned as
    the tool output. Unknown names raise ToolNotFoundError.
    """

    def __init__(
        self,
        outputs: dict[str, _typing.Any] | None = None,
        schemas: list[api_types.ToolSchema] | None = None,
    ) -> None:
        self.outputs = dict(outputs or {})
        self._schemas = schemas or []
        self.executed: list[tuple[str, dict[str, _typing.Any], int]] = []

    def tool_schemas(self) -> list[api_types.ToolSchema]:
        return list(self._schemas)

    async def execute(
        self,
        name: str,
        args: dict[str, _typing.Any],
        timeout_ms: int,
    ) -> str:
        self.executed.append((name, args, timeout_ms))
        if name == "done" and name not in self.outputs:
            summary = args.get("summary")
            if not summary:
                raise tools_base.ToolExecutionError("No summary provided")
            return f"Task completed: {summary}"
        if name not in self.outputs:
            raise tools_base.ToolNotFoundError(f"Unknown tool: {name}")
        value = self.outputs[name]
        if isinstance(value, Exception):
            raise value
        return str(value)

    @property
    def executed_names(self) -> list[str]:
        return [name for name, _, _ in self.executed]


# =============================================================================
# Environment and settings fixtures
# =============================================================================


@_pytest.fixture
def clean_env() -> dict[str, str]:
    """
    Return environment dict with test-related keys removed.

    Use with mock.patch.dict to isolate tests from the actual environment.
    """
    return {k: v for k, v in _os.environ.items() if k not in ENV_KEYS_TO_CLEAR}


@_pytest.fixture
def isolated_env(clean_env: dict[str, str], tmp_path: _pathlib.Path):
    """
    Context manager that isolates tests from environment variables and the
    user's config directory.

    Usage:
        def test_something(isolated_env):
            with isolated_env:
                settings = config.Settings.construct_without_dotenv()
    """
    env = dict(clean_env)
    env["SIGRUN_CONFIG_DIR"] = str(tmp_path / "user-config")
    return _mock.patch.dict(_os.environ, env, clear=True)


@_pytest.fixture
def clean_settings(isolated_env) -> config.Settings:
    """
    Settings instance isolated from environment and .env file.

    This fixture ensures tests get predictable default settings.
    """
    with isolated_env:
        return config.Settings.construct_without_dotenv()


@_pytest.fixture
def session_manager(tmp_path: _pathlib.Path) -> session.SessionManager:
    """SessionManager with a temporary directory for test isolation."""
    return session.SessionManager(tmp_path / "sessions")


@_pytest.fixture
def mock_api_key():
    """
    Fixture that provides a mock API key in the environment.

    Usage:
        def test_with_api_key(mock_api_key):
            # OPENAI_API_KEY is now set to "test-api-key"
            ...
    """
    with _mock.patch.dict(_os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        yield "test-api-key"
