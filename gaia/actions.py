"""Configured tool actions such as `gaia tool git commit`."""

import asyncio
import os
import tempfile
from typing import Awaitable, Callable, Mapping, Protocol

from gaia.assistant import Assistant, ChatSession
from gaia.config import Config, ToolActionConfig
from gaia.exceptions import ActionCancelledError, CommandExecutionError, ConfigurationError, ToolError
from gaia.logging import get_logger
from gaia.operator.safety import Confirmer
from gaia.operator.tools import ShellRunner

log = get_logger(__name__)

PLACEHOLDERS = ("{file}", "{response}", "{output}")


class ContextEditor(Protocol):
    """Lets the user review and change gathered context before generation."""

    def edit(self, context: str) -> str: ...


def apply_context_edit(context: str, reply: str) -> str:
    """Apply a context-editor reply.

    Empty keeps the context, `q`/`quit` cancels, `+text` appends and
    anything else replaces it.
    """
    reply = reply.strip()
    if reply in ("q", "quit"):
        raise ActionCancelledError()
    if not reply:
        return context
    if reply.startswith("+"):
        extra = reply[1:].strip()
        return f"{context}\n\n{extra}" if context else extra
    return reply


def build_command_args(template: str, replacements: Mapping[str, str]) -> list[str]:
    """Split a command template into argv without a shell.

    Every placeholder becomes exactly one argument, whatever its value
    contains; literal text around placeholders is split on whitespace.

    Raises:
        ConfigurationError: a placeholder has no replacement or the result is empty
    """
    spans: list[tuple[int, int, str]] = []
    for placeholder in PLACEHOLDERS:
        start = template.find(placeholder)
        while start >= 0:
            spans.append((start, start + len(placeholder), placeholder))
            start = template.find(placeholder, start + len(placeholder))

    if not spans:
        argv = template.split()
        if not argv:
            raise ConfigurationError("invalid execute_command: empty")
        return argv

    argv = []
    pos = 0
    for start, end, placeholder in sorted(spans):
        argv.extend(template[pos:start].split())
        if placeholder not in replacements:
            raise ConfigurationError(f"missing replacement for placeholder {placeholder}")
        argv.append(replacements[placeholder])
        pos = end
    argv.extend(template[pos:].split())
    if not argv:
        raise ConfigurationError("invalid execute_command: empty")
    return argv


def get_tool_action(config: Config, tool: str, action: str) -> ToolActionConfig:
    actions = config.tools.get(tool) or {}
    if action not in actions:
        raise ConfigurationError(
            f"tool action '{tool}.{action}' is not configured. Use 'gaia config list' to see available tools"
        )
    return actions[action]


async def run_argv(argv: list[str]) -> int:
    """Run a command without a shell, attached to the terminal."""
    try:
        process = await asyncio.create_subprocess_exec(*argv)
    except OSError as e:
        raise CommandExecutionError(f"failed to start {argv[0]}: {e}") from e
    return await process.wait()


class ToolActionRunner:
    """Gathers context, generates a response and hands it to a command."""

    def __init__(
        self,
        config: Config,
        assistant_factory: Callable[[ChatSession], Assistant],
        shell_runner: ShellRunner,
        confirmer: Confirmer,
        context_editor: ContextEditor,
        output: Callable[[str], None] = print,
        command_runner: Callable[[list[str]], Awaitable[int]] | None = None,
    ):
        self.config = config
        self.assistant_factory = assistant_factory
        self.shell_runner = shell_runner
        self.confirmer = confirmer
        self.context_editor = context_editor
        self.output = output
        self.command_runner = command_runner or run_argv

    async def gather_context(self, action: ToolActionConfig) -> str:
        if not action.context_command.strip():
            return ""
        try:
            stdout, _ = await self.shell_runner.run(action.context_command)
        except CommandExecutionError as e:
            detail = f"{e} (stderr: {e.stderr})" if e.stderr else str(e)
            raise ToolError(f"failed to get context: {detail}") from e
        return stdout

    @staticmethod
    def build_prompt(tool: str, action: str, args: list[str], context: str) -> str:
        if args:
            prompt = " ".join(args)
            if context:
                prompt = f"{prompt}\n\nContext:\n{context}"
            return prompt
        if context:
            return context
        raise ToolError(f"no context or arguments provided for tool action '{tool}.{action}'")

    async def _execute(self, template: str, response: str) -> None:
        if "{file}" in template:
            fd, path = tempfile.mkstemp(prefix="gaia-", suffix=".txt")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(response)
                argv = build_command_args(template, {placeholder: path for placeholder in PLACEHOLDERS})
                await self._run_checked(template, argv)
            finally:
                try:
                    os.remove(path)
                except OSError as e:
                    log.warning("Failed to remove temporary file", path=path, error=str(e))
            return

        trimmed = response.strip()
        argv = build_command_args(template, {"{response}": trimmed, "{output}": trimmed})
        await self._run_checked(template, argv)

    async def _run_checked(self, template: str, argv: list[str]) -> None:
        log.debug("Executing tool action command", argv=argv)
        exit_code = await self.command_runner(argv)
        if exit_code:
            raise CommandExecutionError(
                f"failed to execute command '{template}': exit code {exit_code}",
                exit_code=exit_code,
            )

    async def run(self, tool: str, action: str, args: list[str]) -> str | None:
        """Run `tools.<tool>.<action>`. Returns the response, or None when declined.

        Raises:
            ConfigurationError: action missing or command template invalid
            ActionCancelledError: user quit the context editor
            ToolError: context command failed or nothing to send
        """
        action_config = get_tool_action(self.config, tool, action)

        context = await self.gather_context(action_config)
        context = self.context_editor.edit(context)
        prompt = self.build_prompt(tool, action, args, context)

        assistant = self.assistant_factory(ChatSession())
        response = await assistant.process_message(prompt, explicit_role=action_config.role or "default")

        if not self.confirmer.confirm(response):
            self.output("Cancelled.")
            return None

        if action_config.execute_command.strip():
            await self._execute(action_config.execute_command, response)
        else:
            self.output(response)
        return response
