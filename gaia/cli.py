"""Terminal prompts and output helpers for the Gaia CLI."""

import sys
from typing import TextIO

from rich.console import Console
from rich.prompt import Confirm, Prompt

from gaia.actions import apply_context_edit
from gaia.logging import get_logger

log = get_logger(__name__)

CONTEXT_PREVIEW_LINES = 20


def get_console() -> Console:
    return Console()


def get_error_console() -> Console:
    return Console(stderr=True)


def read_stdin(stream: TextIO | None = None) -> str:
    """Return piped stdin content, or an empty string for a terminal."""
    stream = stream or sys.stdin
    try:
        if stream.isatty():
            return ""
        return stream.read().strip()
    except (OSError, ValueError) as e:
        log.warning("Error reading from stdin", error=str(e))
        return ""


class ConsoleConfirmer:
    """Yes/no confirmation through rich prompts. Enter means yes."""

    def __init__(self, console: Console | None = None, title: str = "Confirm"):
        self.console = console or get_console()
        self.title = title

    def confirm(self, message: str) -> bool:
        self.console.print(f"\n[bold]--- {self.title} ---[/bold]")
        self.console.print(message, markup=False, highlight=False)
        return Confirm.ask("Proceed?", default=True, console=self.console)


class ConsoleContextEditor:
    """Shows gathered context and asks how to change it."""

    def __init__(self, console: Console | None = None):
        self.console = console or get_console()

    def edit(self, context: str) -> str:
        self.console.print("\n[bold]--- Current Context ---[/bold]")
        if not context:
            self.console.print("(no context)")
        else:
            lines = context.split("\n")
            preview = "\n".join(lines[:CONTEXT_PREVIEW_LINES])
            self.console.print(preview, markup=False, highlight=False)
            if len(lines) > CONTEXT_PREVIEW_LINES:
                self.console.print(f"... ({len(lines) - CONTEXT_PREVIEW_LINES} more lines)")
        self.console.print(
            "\nOptions:\n"
            "  \\[Enter] - Use current context as-is\n"
            "  \\[text]  - Replace context with new text\n"
            "  \\[+text] - Append text to context\n"
            "  \\[q]     - Quit"
        )
        reply = Prompt.ask(">", default="", show_default=False, console=self.console)
        return apply_context_edit(context, reply)


class StreamPrinter:
    """Writes streamed chunks straight to stdout."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stdout
        self._ends_with_newline = True

    def __call__(self, chunk: str) -> None:
        if not chunk:
            return
        self.stream.write(chunk)
        self.stream.flush()
        self._ends_with_newline = chunk.endswith("\n")

    def finish(self) -> None:
        if not self._ends_with_newline:
            self.stream.write("\n")
            self.stream.flush()
            self._ends_with_newline = True
