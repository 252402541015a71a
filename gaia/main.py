"""Main entry point for Gaia."""

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn, Optional, TypeVar

import typer
from rich.markup import escape

from gaia import __version__
from gaia.actions import ToolActionRunner
from gaia.assistant import Assistant, ChatSession, render_role_template
from gaia.cache import ResponseCache
from gaia.cli import (
    ConsoleConfirmer,
    ConsoleContextEditor,
    StreamPrinter,
    get_console,
    get_error_console,
    read_stdin,
)
from gaia.config import Config, set_config
from gaia.exceptions import GaiaError, MaxStepsReachedError
from gaia.llm import LLMProvider, create_provider_from_config
from gaia.logging import configure_logging, log
from gaia.operator import OperatorLoop, RunOptions, SubprocessShellRunner
from gaia.operator.safety import Confirmer
from gaia.operator.tools import ShellRunner
from gaia.roles import AutoRoleSettings, RoleDetector

T = TypeVar("T")

app = typer.Typer(help="Gaia - a CLI front-end for local and hosted language models")
config_app = typer.Typer(help="Set configuration options")
cache_app = typer.Typer(help="Manage local response cache")
app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")


@dataclass
class CLIState:
    """Global options shared by every command."""

    config_path: str = ""
    no_cache: bool = False
    refresh_cache: bool = False
    debug: bool = False


def _state(ctx: typer.Context) -> CLIState:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, CLIState) else CLIState()


def _fail(message: str) -> NoReturn:
    get_error_console().print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(code=1)


def _config_path(state: CLIState) -> Path:
    return Path(state.config_path).expanduser() if state.config_path else Config.resolve_default_config_path()


def load_cli_config(state: CLIState) -> Config:
    """Load config and apply global flag overrides."""
    cfg = Config.load(_config_path(state))
    if state.no_cache:
        cfg.cache.bypass = True
    if state.refresh_cache:
        cfg.cache.refresh = True
    if state.debug:
        cfg.debug = True
    configure_logging(level="DEBUG" if cfg.debug else cfg.logging.level, fmt=cfg.logging.format)
    set_config(cfg)
    return cfg


def build_cache(cfg: Config) -> ResponseCache:
    return ResponseCache(
        cfg.cache.dir,
        enabled=cfg.cache.enabled and not cfg.cache.bypass,
        refresh=cfg.cache.refresh,
    )


def auto_role_settings(cfg: Config) -> AutoRoleSettings:
    """Translate the `auto_role` section into detector settings."""
    return AutoRoleSettings(
        enabled=cfg.auto_role.enabled,
        mode=cfg.auto_role.mode,
        keywords={role: list(words) for role, words in cfg.auto_role.keywords.items()},
    )


def operator_run_options(
    cfg: Config,
    max_steps: int | None = None,
    dry_run: bool = False,
    yes: bool = False,
    confirmer: Confirmer | None = None,
    shell_runner: ShellRunner | None = None,
) -> RunOptions:
    """Translate the `operator` section plus CLI flags into loop options."""
    op = cfg.operator
    return RunOptions(
        max_steps=max_steps if max_steps is not None else op.max_steps,
        dry_run=dry_run or op.dry_run,
        yes=yes,
        confirm_medium_risk=op.confirm_medium_risk,
        denylist=list(op.denylist),
        allowlist=list(op.allowlist),
        confirmer=confirmer,
        shell_runner=shell_runner or SubprocessShellRunner(timeout=op.command_timeout_seconds),
        max_output_bytes=op.output_max_bytes,
        model=cfg.model,
    )


def build_assistant(
    cfg: Config,
    provider: LLMProvider,
    cache: ResponseCache,
    session: ChatSession | None = None,
) -> Assistant:
    detector = RoleDetector(
        auto_role_settings(cfg),
        cfg.available_roles(),
        provider=provider,
        cache=cache,
        classifier_system_prompt=render_role_template(cfg.roles.get("default", "")),
    )
    return Assistant(cfg, provider, detector, cache=cache, session=session)


def _run_async(work: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning Gaia errors into a red message and exit code 1."""
    try:
        return asyncio.run(work)
    except KeyboardInterrupt:
        log.info("Interrupted")
        raise typer.Exit(code=130)
    except GaiaError as e:
        _fail(str(e))


@app.callback()
def main(
    ctx: typer.Context,
    config: str = typer.Option("", "-c", "--config", help="Path to an alternative YAML configuration file (or $GAIA_CONFIG)"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass local response cache"),
    refresh_cache: bool = typer.Option(False, "--refresh-cache", help="Regenerate and overwrite cache entries"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging (role detection, operator steps)"),
) -> None:
    """Gaia CLI."""
    ctx.obj = CLIState(config_path=config, no_cache=no_cache, refresh_cache=refresh_cache, debug=debug)


@app.command()
def ask(
    ctx: typer.Context,
    message: list[str] = typer.Argument(..., help="Message to send"),
    role: str = typer.Option("", "-r", "--role", help="Role to use (skips auto-detection)"),
) -> None:
    """Ask the model a single question."""
    piped = read_stdin()
    text = " ".join(message)
    if piped:
        text = f"{piped} {text}" if text else piped
    if not text.strip():
        _fail("no message provided. Please provide a message as an argument or via stdin.")

    try:
        cfg = load_cli_config(_state(ctx))
    except GaiaError as e:
        _fail(str(e))

    async def _ask() -> None:
        provider = create_provider_from_config(cfg)
        printer = StreamPrinter()
        try:
            assistant = build_assistant(cfg, provider, build_cache(cfg))
            await assistant.process_message(text, explicit_role=role, stream_to=printer)
        finally:
            printer.finish()
            await provider.close()

    _run_async(_ask())


@app.command()
def chat(ctx: typer.Context) -> None:
    """Start an interactive chat session."""
    try:
        cfg = load_cli_config(_state(ctx))
    except GaiaError as e:
        _fail(str(e))
    console = get_console()

    async def _chat() -> None:
        provider = create_provider_from_config(cfg)
        assistant = build_assistant(cfg, provider, build_cache(cfg), session=ChatSession())
        console.print("Starting chat session. Type 'exit' to end the chat.")
        console.print("-" * 40)
        try:
            while True:
                try:
                    line = console.input("You: ").strip()
                except EOFError:
                    console.print("\nChat session ended (EOF received).")
                    break
                if line == "exit":
                    console.print("Chat session ended.")
                    break
                if not line:
                    continue
                printer = StreamPrinter()
                try:
                    await assistant.process_message(line, stream_to=printer)
                except GaiaError as e:
                    printer.finish()
                    get_error_console().print(f"[red]Error processing message:[/red] {escape(str(e))}")
                    console.print("You can continue chatting or type 'exit' to end the session.")
                printer.finish()
                console.print("-" * 40)
        finally:
            await provider.close()

    _run_async(_chat())


@app.command()
def investigate(
    ctx: typer.Context,
    goal: list[str] = typer.Argument(..., help="What to investigate"),
    max_steps: Optional[int] = typer.Option(None, "-n", "--max-steps", help="Maximum number of operator steps"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not execute commands; only show what would be run"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation for medium-risk commands"),
) -> None:
    """Investigate a goal by running guarded shell commands and reasoning."""
    try:
        cfg = load_cli_config(_state(ctx))
    except GaiaError as e:
        _fail(str(e))
    options = operator_run_options(
        cfg,
        max_steps=max_steps,
        dry_run=dry_run,
        yes=yes,
        confirmer=ConsoleConfirmer(title="Confirm command"),
    )

    async def _investigate() -> str:
        provider = create_provider_from_config(cfg)
        try:
            await provider.ensure_model()
            return await OperatorLoop(provider, options).run(" ".join(goal))
        except MaxStepsReachedError as e:
            get_error_console().print(f"[yellow]Warning:[/yellow] {escape(str(e))}")
            return e.partial_answer
        finally:
            await provider.close()

    typer.echo(_run_async(_investigate()))


@app.command()
def tool(
    ctx: typer.Context,
    tool_name: str = typer.Argument(..., metavar="TOOL", help="Configured tool (e.g. git)"),
    action: str = typer.Argument(..., help="Tool action (e.g. commit)"),
    args: Optional[list[str]] = typer.Argument(None, help="Extra description sent with the context"),
) -> None:
    """Run a configured tool action (e.g. `gaia tool git commit`)."""
    try:
        cfg = load_cli_config(_state(ctx))
    except GaiaError as e:
        _fail(str(e))
    console = get_console()

    async def _tool() -> Any:
        provider = create_provider_from_config(cfg)
        cache = build_cache(cfg)
        try:
            runner = ToolActionRunner(
                cfg,
                assistant_factory=lambda session: build_assistant(cfg, provider, cache, session=session),
                shell_runner=SubprocessShellRunner(timeout=cfg.operator.command_timeout_seconds),
                confirmer=ConsoleConfirmer(console, title="Generated Message"),
                context_editor=ConsoleContextEditor(console),
                output=typer.echo,
            )
            return await runner.run(tool_name, action, list(args or []))
        finally:
            await provider.close()

    _run_async(_tool())


@app.command()
def version() -> None:
    """Print the version information."""
    typer.echo(f"Gaia {__version__}")


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return str(value)


@config_app.command("list")
def config_list(ctx: typer.Context) -> None:
    """List configuration settings."""
    try:
        cfg = load_cli_config(_state(ctx))
    except GaiaError as e:
        _fail(str(e))
    for key, value in cfg.flatten().items():
        typer.echo(f"{key}: {_format_value(value)}")


@config_app.command("get")
def config_get(ctx: typer.Context, key: str = typer.Argument(..., help="Dotted key, e.g. operator.max_steps")) -> None:
    """Get a configuration setting."""
    try:
        cfg = load_cli_config(_state(ctx))
        value = cfg.get_value(key)
    except GaiaError as e:
        _fail(str(e))
    typer.echo(_format_value(value))


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key, e.g. auto_role.mode"),
    value: str = typer.Argument(..., help="New value (YAML scalar or comma separated list)"),
) -> None:
    """Set a configuration setting and save the file."""
    path = _config_path(_state(ctx))
    try:
        updated = Config.from_yaml(path).set_value(key, value)
        updated.save(path)
    except GaiaError as e:
        _fail(str(e))
    typer.echo(f"Config setting updated {key} to {value}")


@config_app.command("path")
def config_path(ctx: typer.Context) -> None:
    """Print the configuration file path."""
    typer.echo(str(_config_path(_state(ctx))))


@config_app.command("create")
def config_create(ctx: typer.Context) -> None:
    """Create the default configuration file if it does not exist."""
    try:
        path = Config.ensure_file(_config_path(_state(ctx)))
    except (GaiaError, OSError) as e:
        _fail(f"failed to initialize config: {e}")
    typer.echo(f"Configuration file ensured at: {path}")


def _cache_from_ctx(ctx: typer.Context) -> ResponseCache:
    try:
        cfg = load_cli_config(_state(ctx))
    except GaiaError as e:
        _fail(str(e))
    return ResponseCache(cfg.cache.dir)


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Clear local response cache."""
    try:
        removed = _cache_from_ctx(ctx).clear()
    except GaiaError as e:
        _fail(str(e))
    typer.echo(f"Removed {removed} cache entries")


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show cache statistics."""
    try:
        stats = _cache_from_ctx(ctx).stats()
    except GaiaError as e:
        _fail(str(e))
    typer.echo(f"Entries: {stats.count}\nSize: {stats.size_bytes} bytes")


@cache_app.command("list")
def cache_list(ctx: typer.Context) -> None:
    """List cache entries."""
    try:
        entries = _cache_from_ctx(ctx).list_entries()
    except GaiaError as e:
        _fail(str(e))
    if not entries:
        typer.echo("No cache entries found")
        return
    for entry in entries:
        typer.echo(f"{entry.key}\t{entry.created_at}\t{entry.size_bytes} bytes")


@cache_app.command("dump")
def cache_dump(ctx: typer.Context) -> None:
    """Print all cache entries."""
    try:
        entries = _cache_from_ctx(ctx).read_entries()
    except GaiaError as e:
        _fail(str(e))
    if not entries:
        typer.echo("No cache entries found")
        return
    for entry in entries:
        typer.echo(f"Key: {entry.key}\nCreatedAt: {entry.created_at}\nResponse:\n{entry.response}\n")


if __name__ == "__main__":
    app()
