import io

import pytest
from rich.console import Console

from gaia.cli import ConsoleConfirmer, ConsoleContextEditor, StreamPrinter, read_stdin
from gaia.exceptions import ActionCancelledError


class FakeTTY(io.StringIO):
    def isatty(self) -> bool:
        return True


def _console(answers: str) -> Console:
    console = Console(file=io.StringIO(), force_terminal=False, width=120)
    console.input = lambda *args, **kwargs: answers  # type: ignore[method-assign]
    return console


def test_read_stdin_ignores_terminal():
    assert read_stdin(FakeTTY("ignored")) == ""


def test_read_stdin_strips_piped_input():
    assert read_stdin(io.StringIO("  diff --git a b \n\n")) == "diff --git a b"


def test_stream_printer_adds_final_newline():
    out = io.StringIO()
    printer = StreamPrinter(out)
    printer("Hel")
    printer("")
    printer("lo")
    printer.finish()
    printer.finish()
    assert out.getvalue() == "Hello\n"


def test_stream_printer_keeps_existing_newline():
    out = io.StringIO()
    printer = StreamPrinter(out)
    printer("done\n")
    printer.finish()
    assert out.getvalue() == "done\n"


@pytest.mark.parametrize(("answer", "expected"), [("", True), ("y", True), ("n", False)])
def test_console_confirmer(answer, expected):
    console = _console(answer)
    assert ConsoleConfirmer(console, title="Generated Message").confirm("feat: x") is expected
    assert "--- Generated Message ---" in console.file.getvalue()


def test_context_editor_previews_and_appends():
    console = _console("+ mention the tests")
    context = "\n".join(f"line {i}" for i in range(25))
    edited = ConsoleContextEditor(console).edit(context)
    assert edited == f"{context}\n\nmention the tests"
    output = console.file.getvalue()
    assert "line 19" in output
    assert "line 20" not in output
    assert "... (5 more lines)" in output


def test_context_editor_quit_cancels():
    with pytest.raises(ActionCancelledError):
        ConsoleContextEditor(_console("q")).edit("")
