"""Tests for core/tool_processor.py."""

import json as _json
import pathlib as _pathlib

import pytest as _pytest

import sigrun.constants as constants
import sigrun.core.confirmation as confirmation
import sigrun.core.tool_processor as tool_processor
import sigrun.core.types as types
import sigrun.logging as sigrun_logging
import sigrun.tools.base as tools_base
import tests.conftest as conftest

BREAKING = frozenset(constants.DEFAULT_BREAKING_TOOLS)


class RecordingCallbacks(tool_processor.ToolProcessorCallbacks):
    """Callbacks that remember what they were shown."""

    def __init__(self) -> None:
        self.calls: list[types.ToolCallDisplay] = []
        self.results: list[types.ToolResultDisplay] = []

    async def on_tool_call(self, tool_call: types.ToolCallDisplay) -> None:
        self.calls.append(tool_call)

    async def on_tool_result(self, result: types.ToolResultDisplay) -> None:
        self.results.append(result)


class TestDispatch:
    """Tests for single-call dispatch."""

    @_pytest.mark.asyncio
    async def test_success(self) -> None:
        runtime = conftest.FakeRuntime({"list_dir": "a.txt\nb.txt"})
        processor = tool_processor.ToolCallProcessor(runtime)

        result = await processor.dispatch(
            conftest.tool_call("list_dir", {"DirectoryPath": "/tmp"})
        )

        assert result == types.ToolResult("call_1", "a.txt\nb.txt", success=True)
        assert runtime.executed == [("list_dir", {"DirectoryPath": "/tmp"}, 30_000)]
        metrics = processor.metrics.get("list_dir")
        assert metrics is not None
        assert metrics.successes == 1

    @_pytest.mark.asyncio
    async def test_tool_error_becomes_failed_result(self) -> None:
        runtime = conftest.FakeRuntime({"list_dir": tools_base.ToolExecutionError("disk full")})
        processor = tool_processor.ToolCallProcessor(runtime)

        result = await processor.dispatch(conftest.tool_call("list_dir"))

        assert result.success is False
        assert result.output == "Error executing tool: disk full"
        assert processor.metrics.get("list_dir").failures == 1  # type: ignore[union-attr]

    @_pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self) -> None:
        runtime = conftest.FakeRuntime({"list_dir": RuntimeError()})
        processor = tool_processor.ToolCallProcessor(runtime)

        result = await processor.dispatch(conftest.tool_call("list_dir"))

        assert result.output == "Error executing tool: RuntimeError"

    @_pytest.mark.asyncio
    async def test_unknown_tool(self) -> None:
        processor = tool_processor.ToolCallProcessor(conftest.FakeRuntime())

        result = await processor.dispatch(conftest.tool_call("grep_search"))

        assert result.success is False
        assert result.output == "Error executing tool: Unknown tool: grep_search"

    @_pytest.mark.asyncio
    async def test_invalid_arguments_are_not_dispatched(self) -> None:
        runtime = conftest.FakeRuntime({"list_dir": "x"})
        processor = tool_processor.ToolCallProcessor(runtime)

        result = await processor.dispatch(conftest.tool_call("list_dir", '{"DirectoryPath": '))

        assert result.success is False
        assert result.output.startswith("Error executing tool: invalid arguments:")
        assert runtime.executed == []

    @_pytest.mark.asyncio
    async def test_done_uses_its_own_timeout(self) -> None:
        runtime = conftest.FakeRuntime({"list_dir": "x"})
        processor = tool_processor.ToolCallProcessor(
            runtime, general_timeout_ms=1000, done_timeout_ms=50
        )

        await processor.dispatch(conftest.tool_call("done", {"summary": "ok"}))
        await processor.dispatch(conftest.tool_call("list_dir"))

        assert [timeout for _, _, timeout in runtime.executed] == [50, 1000]

    @_pytest.mark.asyncio
    async def test_callbacks(self) -> None:
        callbacks = RecordingCallbacks()
        processor = tool_processor.ToolCallProcessor(
            conftest.FakeRuntime({"create_file": "created"}), callbacks=callbacks
        )

        await processor.dispatch(
            conftest.tool_call("create_file", {"FilePath": "/a.txt"}), breaking=True
        )

        assert callbacks.calls[0].tool_name == "create_file"
        assert callbacks.calls[0].requires_confirmation is True
        assert callbacks.results[0].result.output == "created"


class TestProcessToolCalls:
    """Tests for batch classification and confirmation."""

    @_pytest.mark.asyncio
    async def test_non_breaking_batch_runs_in_order(self) -> None:
        runtime = conftest.FakeRuntime({"list_dir": "dir", "view_file": "file"})
        processor = tool_processor.ToolCallProcessor(runtime)

        outcome = await processor.process_tool_calls(
            [
                conftest.tool_call("view_file", call_id="c1"),
                conftest.tool_call("list_dir", call_id="c2"),
            ],
            BREAKING,
        )

        assert not outcome.requires_confirmation
        assert [(r.tool_call_id, r.output) for r in outcome.results] == [
            ("c1", "file"),
            ("c2", "dir"),
        ]
        assert runtime.executed_names == ["view_file", "list_dir"]

    @_pytest.mark.asyncio
    async def test_breaking_call_defers_without_channel(self) -> None:
        runtime = conftest.FakeRuntime({"create_file": "created", "list_dir": "dir"})
        processor = tool_processor.ToolCallProcessor(runtime)

        outcome = await processor.process_tool_calls(
            [
                conftest.tool_call("list_dir", call_id="c1"),
                conftest.tool_call("create_file", {"FilePath": "/tmp/a.txt"}, call_id="c2"),
            ],
            BREAKING,
        )

        assert outcome.requires_confirmation
        assert outcome.results == []
        assert outcome.confirmation_message == (
            constants.PERMISSION_HEADER
            + "• Create a new file at: /tmp/a.txt\n"
            + constants.PERMISSION_FOOTER
        )
        assert runtime.executed == []

    @_pytest.mark.asyncio
    async def test_channel_approval_runs_whole_batch(self) -> None:
        runtime = conftest.FakeRuntime({"create_file": "created", "list_dir": "dir"})
        channel = confirmation.AutoApproveChannel()
        processor = tool_processor.ToolCallProcessor(runtime, channel=channel)

        outcome = await processor.process_tool_calls(
            [
                conftest.tool_call("create_file", {"FilePath": "/a.txt"}, call_id="c1"),
                conftest.tool_call("list_dir", call_id="c2"),
            ],
            BREAKING,
        )

        assert len(channel.asked) == 1
        assert [r.output for r in outcome.results] == ["created", "dir"]

    @_pytest.mark.asyncio
    async def test_channel_denial_denies_whole_batch(self) -> None:
        runtime = conftest.FakeRuntime({"run_command": "ran", "list_dir": "dir"})
        processor = tool_processor.ToolCallProcessor(
            runtime, channel=confirmation.AutoDenyChannel()
        )

        outcome = await processor.process_tool_calls(
            [
                conftest.tool_call("list_dir", call_id="c1"),
                conftest.tool_call(
                    "run_command", {"CommandLine": "make", "Cwd": "/src"}, call_id="c2"
                ),
            ],
            BREAKING,
        )

        assert outcome.denied
        assert runtime.executed == []
        assert [r.output for r in outcome.results] == [
            "Permission denied by user: list_dir was not executed.",
            "Permission denied by user: run_command was not executed.",
        ]
        assert "• Run the command: make in /src" in (outcome.confirmation_message or "")
        assert len(outcome.failures) == 2

    @_pytest.mark.asyncio
    async def test_confirmed_batch_skips_the_question(self) -> None:
        runtime = conftest.FakeRuntime({"update_file": "updated"})
        channel = confirmation.AutoDenyChannel()
        processor = tool_processor.ToolCallProcessor(runtime, channel=channel)

        outcome = await processor.process_tool_calls(
            [conftest.tool_call("update_file", {"FilePath": "/a.txt"})],
            BREAKING,
            confirmed=True,
        )

        assert channel.asked == []
        assert outcome.results[0].output == "updated"

    @_pytest.mark.asyncio
    async def test_events_are_logged(self, tmp_path: _pathlib.Path) -> None:
        logger = sigrun_logging.ConversationLogger(log_dir=tmp_path, session_id="t1")
        processor = tool_processor.ToolCallProcessor(
            conftest.FakeRuntime({"list_dir": "dir"}), logger=logger
        )

        await processor.process_tool_calls([conftest.tool_call("list_dir")], BREAKING)
        logger.close()

        assert logger.file_path is not None
        events = [_json.loads(line) for line in logger.file_path.read_text().splitlines()]
        kinds = [e["event_type"] for e in events]
        assert kinds == ["session_start", "tool_call", "tool_result", "session_end"]
        assert events[2]["success"] is True


class TestResultHelpers:
    """Tests for the synthetic result builders."""

    def test_placeholders(self) -> None:
        results = tool_processor.placeholder_results([conftest.tool_call("create_file")])
        assert results[0].to_message() == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": constants.PERMISSION_PLACEHOLDER,
        }

    def test_skipped(self) -> None:
        results = tool_processor.skipped_results([conftest.tool_call("list_dir")])
        assert results[0].output == (
            "Skipped: list_dir was not executed because the task was marked done."
        )
        assert results[0].success is False

    def test_unknown_breaking_tool_description(self) -> None:
        message = tool_processor.describe_breaking_calls([conftest.tool_call("delete_everything")])
        assert "• Run the tool: delete_everything\n" in message
