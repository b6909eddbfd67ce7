"""
Main CLI entry point for Sigrun.

Provides the command-line interface using Click. The CLI is a thin front end
over AgentLoop: it wires settings, provider, tool runtime, logger and session
persistence together and renders results with Rich.
"""

import asyncio as _asyncio
import json as _json
import logging as _logging
import sys as _sys
import typing as _typing

import click as _click
import pydantic as _pydantic
import rich.console as _rich_console
import rich.panel as _rich_panel
import rich.syntax as _rich_syntax
import rich.table as _rich_table
import yaml as _yaml

import sigrun
import sigrun.api as api
import sigrun.config as config
import sigrun.core as core
import sigrun.core.types as core_types
import sigrun.logging as sigrun_logging
import sigrun.session as session
import sigrun.tools as tools

CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}


def _run_async(coro: _typing.Coroutine[_typing.Any, _typing.Any, _typing.Any]) -> _typing.Any:
    """Run an async coroutine synchronously."""
    return _asyncio.run(coro)


def _console() -> _rich_console.Console:
    return _rich_console.Console(highlight=False)


class ClickConfirmationChannel(core.ConfirmationChannel):
    """Asks for permission on the terminal."""

    def __init__(self, console: _rich_console.Console) -> None:
        self._console = console

    async def ask(self, message: str) -> bool:
        self._console.print(_rich_panel.Panel(message, title="Permission required"))
        return _click.confirm("Allow these operations?", default=False)


class ConsoleCallbacks(core.AgentLoopCallbacks):
    """Prints tool activity and loop notices in a dim style."""

    def __init__(self, console: _rich_console.Console, *, verbose: bool = False) -> None:
        self._console = console
        self._verbose = verbose

    async def on_iteration_start(self, iteration: int) -> None:
        if self._verbose:
            self._console.print(f"[dim]iteration {iteration}[/dim]")

    async def on_tool_call(self, tool_call: core_types.ToolCallDisplay) -> None:
        self._console.print(f"[dim]→ {tool_call.tool_name}[/dim]")

    async def on_tool_result(self, result: core_types.ToolResultDisplay) -> None:
        if not result.result.success:
            message = f"{result.tool_name}: {result.result.output}"
            self._console.print(f"[dim red]✗ {message}[/dim red]")

    async def on_info(self, message: str) -> None:
        self._console.print(f"[dim]{message}[/dim]")


@_click.group(context_settings=CONTEXT_SETTINGS)
@_click.version_option(sigrun.__version__, "-v", "--version", prog_name="sigrun")
@_click.option("--model", type=str, default=None, help="Model to use for completions")
@_click.option("--verbose", is_flag=True, help="Enable verbose output")
@_click.pass_context
def cli(ctx: _click.Context, model: str | None, verbose: bool) -> None:
    """
    Sigrun - agentic loop controller.

    \b
    Examples:
        sigrun chat "list files in /tmp"     # Single query
        sigrun resume abc12345 yes           # Answer a pending permission request
        sigrun config show                   # Show configuration
        sigrun session list                  # List saved sessions
    """
    try:
        settings = config.Settings()
    except (config.ConfigFileError, _pydantic.ValidationError) as e:
        _click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1) from None

    if model:
        settings.provider.model = model

    _logging.basicConfig(
        level="DEBUG" if verbose else settings.logging.level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["session_manager"] = session.SessionManager(settings.sessions_dir)
    ctx.obj["verbose"] = verbose


def _make_provider(settings: config.Settings) -> api.CompletionProvider:
    """Create the provider, exiting with status 1 if it is not configured."""
    try:
        provider = api.create_provider(settings)
        provider.validate_credentials()
    except api.ConfigurationError as e:
        _click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1) from None
    return provider


def _build_loop(
    settings: config.Settings,
    provider: api.CompletionProvider,
    store: core.ConversationStore,
    *,
    console: _rich_console.Console,
    channel: core.ConfirmationChannel | None,
    logger: sigrun_logging.ConversationLogger | None,
    verbose: bool,
) -> core.AgentLoop:
    return core.AgentLoop.from_settings(
        settings,
        provider,
        tools.RegistryToolRuntime(),
        store=store,
        channel=channel,
        callbacks=ConsoleCallbacks(console, verbose=verbose),
        logger=logger,
    )


def _render_result(
    console: _rich_console.Console,
    result: core.AgentLoopResult,
    sess: session.Session,
    *,
    streamed: bool,
) -> None:
    if result.status is core.LoopStatus.CONFIRMING:
        console.print(_rich_panel.Panel(result.response_text, title="Permission required"))
        console.print(f"[dim]Answer with: sigrun resume {sess.id} yes|no[/dim]")
    elif result.status is core.LoopStatus.FAILED:
        console.print(f"[red]{result.response_text}[/red]")
    elif streamed:
        console.print()
    else:
        console.print(result.response_text)


async def _drive(
    provider: api.CompletionProvider,
    action: _typing.Callable[[], _typing.Awaitable[core.AgentLoopResult]],
) -> core.AgentLoopResult:
    try:
        return await action()
    finally:
        await provider.close()


def _finish(
    ctx: _click.Context,
    settings: config.Settings,
    sess: session.Session,
    loop: core.AgentLoop,
    logger: sigrun_logging.ConversationLogger,
    result: core.AgentLoopResult,
) -> None:
    logger.close()
    if settings.session.auto_save or result.needs_confirmation:
        sess.update_from_store(loop.store, tool_metrics=loop.processor.metrics.to_dict())
        manager: session.SessionManager = ctx.obj["session_manager"]
        manager.save(sess)
    if result.status is core.LoopStatus.FAILED:
        raise SystemExit(1)


@cli.command()
@_click.argument("prompt", required=False)
@_click.option("--stream/--no-stream", default=True, help="Stream the response as it arrives")
@_click.option("-y", "--yes", is_flag=True, help="Approve every file or command operation")
@_click.option(
    "--session", "session_id", type=str, default=None, help="Session to continue or create"
)
@_click.option("--no-log", is_flag=True, help="Disable the JSONL conversation log")
@_click.pass_context
def chat(
    ctx: _click.Context,
    prompt: str | None,
    stream: bool,
    yes: bool,
    session_id: str | None,
    no_log: bool,
) -> None:
    """Send a query and run the agent loop until it answers.

    Without --yes, file and command operations are confirmed on the terminal.
    When stdin is not a terminal, the loop stops and the request can be
    answered later with 'sigrun resume'.
    """
    settings: config.Settings = ctx.obj["settings"]
    manager: session.SessionManager = ctx.obj["session_manager"]
    console = _console()

    if prompt is None:
        if _sys.stdin.isatty():
            raise _click.UsageError("Provide a prompt argument or pipe one on stdin")
        prompt = _sys.stdin.read()
    if not prompt.strip():
        raise _click.UsageError("Prompt is empty")

    try:
        sess = manager.get_or_create(session_id, model=settings.provider.model)
    except session.InvalidSessionIdError as e:
        raise _click.BadParameter(str(e), param_hint="--session") from None

    if yes:
        channel: core.ConfirmationChannel | None = core.AutoApproveChannel()
    elif _sys.stdin.isatty():
        channel = ClickConfirmationChannel(console)
    else:
        channel = None

    provider = _make_provider(settings)
    logger = sigrun_logging.ConversationLogger.from_settings(
        settings, sess.id, enabled=not no_log
    )
    loop = _build_loop(
        settings,
        provider,
        sess.to_store(settings.history.max_length),
        console=console,
        channel=channel,
        logger=logger,
        verbose=ctx.obj["verbose"],
    )

    def on_chunk(text: str) -> None:
        console.print(text, end="")

    if stream:
        result = _run_async(_drive(provider, lambda: loop.run_streaming(prompt, on_chunk)))
    else:
        result = _run_async(_drive(provider, lambda: loop.run(prompt)))

    _render_result(console, result, sess, streamed=stream)
    _finish(ctx, settings, sess, loop, logger, result)


@cli.command()
@_click.argument("session_id")
@_click.argument("reply")
@_click.option("--no-log", is_flag=True, help="Disable the JSONL conversation log")
@_click.pass_context
def resume(ctx: _click.Context, session_id: str, reply: str, no_log: bool) -> None:
    """Answer a pending permission request (REPLY containing 'yes' grants it)."""
    settings: config.Settings = ctx.obj["settings"]
    manager: session.SessionManager = ctx.obj["session_manager"]
    console = _console()

    try:
        sess = manager.load(session_id)
    except session.InvalidSessionIdError as e:
        _click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None
    if sess is None:
        _click.echo(f"Error: Session not found: {session_id}", err=True)
        raise SystemExit(1)

    provider = _make_provider(settings)
    logger = sigrun_logging.ConversationLogger.from_settings(
        settings, sess.id, enabled=not no_log
    )
    loop = _build_loop(
        settings,
        provider,
        sess.to_store(settings.history.max_length),
        console=console,
        channel=None,
        logger=logger,
        verbose=ctx.obj["verbose"],
    )
    result = _run_async(_drive(provider, lambda: loop.resume(reply)))

    _render_result(console, result, sess, streamed=False)
    _finish(ctx, settings, sess, loop, logger, result)


@cli.group(name="config")
def config_cmd() -> None:
    """Configuration commands."""
    pass


@config_cmd.command(name="show")
@_click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@_click.pass_context
def config_show(ctx: _click.Context, as_json: bool) -> None:
    """Show effective configuration from all sources (API key masked)."""
    settings: config.Settings = ctx.obj["settings"]
    data = settings.to_display_dict()

    if as_json:
        _click.echo(_json.dumps(data, indent=2))
        return

    yaml_text = _yaml.dump(data, default_flow_style=False, sort_keys=False)
    _console().print(_rich_syntax.Syntax(yaml_text, "yaml", background_color="default"))

    extra = settings.get_extra_fields()
    if extra:
        _click.echo("Unknown configuration keys (check for typos):", err=True)
        for key in sorted(extra):
            _click.echo(f"  {key}", err=True)


@cli.group(name="session")
def session_cmd() -> None:
    """Session management commands."""
    pass


@session_cmd.command(name="list")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.option("--limit", type=int, default=10, help="Maximum sessions to list")
@_click.pass_context
def session_list(ctx: _click.Context, json_output: bool, limit: int) -> None:
    """List recent sessions."""
    manager: session.SessionManager = ctx.obj["session_manager"]
    summaries = manager.list_summaries(limit)

    if json_output:
        _click.echo(_json.dumps([s.to_dict() for s in summaries], indent=2))
        return

    if not summaries:
        _click.echo("No sessions found.")
        return

    table = _rich_table.Table(title="Recent Sessions")
    table.add_column("ID")
    table.add_column("Updated")
    table.add_column("Msgs", justify="right")
    table.add_column("Pending")
    table.add_column("Title")
    for s in summaries:
        table.add_row(
            s.id,
            s.updated_at[:19],
            str(s.message_count),
            "yes" if s.awaiting_confirmation else "",
            s.title or "(untitled)",
        )
    _console().print(table)


def main() -> None:
    """Main entry point with correct program name."""
    cli(prog_name="sigrun")


if __name__ == "__main__":
    main()
