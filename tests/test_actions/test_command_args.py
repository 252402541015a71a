import pytest

from gaia.actions import apply_context_edit, build_command_args, get_tool_action
from gaia.config import Config
from gaia.exceptions import ActionCancelledError, ConfigurationError


def test_placeholder_value_stays_one_argument():
    argv = build_command_args("git checkout -b {response}", {"{response}": "feature/add login; rm -rf /"})
    assert argv == ["git", "checkout", "-b", "feature/add login; rm -rf /"]


def test_file_placeholder_and_surrounding_text():
    argv = build_command_args("git commit -F {file} --no-verify", {"{file}": "/tmp/gaia 1.txt"})
    assert argv == ["git", "commit", "-F", "/tmp/gaia 1.txt", "--no-verify"]


def test_repeated_and_mixed_placeholders():
    argv = build_command_args("echo {output} {response} {output}", {"{output}": "a", "{response}": "b"})
    assert argv == ["echo", "a", "b", "a"]


def test_template_without_placeholders_is_split():
    assert build_command_args("  notify-send  done ", {}) == ["notify-send", "done"]


def test_missing_replacement_raises():
    with pytest.raises(ConfigurationError, match=r"missing replacement for placeholder \{file\}"):
        build_command_args("cat {file}", {"{response}": "x"})


def test_empty_template_raises():
    with pytest.raises(ConfigurationError, match="invalid execute_command: empty"):
        build_command_args("   ", {})


def test_get_tool_action_reads_defaults():
    action = get_tool_action(Config(), "git", "branch")
    assert action.context_command == "git diff"
    assert action.role == "branch"


def test_get_tool_action_missing_raises():
    with pytest.raises(ConfigurationError, match="'git.push' is not configured"):
        get_tool_action(Config(), "git", "push")


@pytest.mark.parametrize(
    ("reply", "expected"),
    [
        ("", "diff"),
        ("   ", "diff"),
        ("+ focus on tests", "diff\n\nfocus on tests"),
        ("replace everything", "replace everything"),
    ],
)
def test_apply_context_edit(reply, expected):
    assert apply_context_edit("diff", reply) == expected


def test_append_to_empty_context():
    assert apply_context_edit("", "+only this") == "only this"


@pytest.mark.parametrize("reply", ["q", "quit", " q "])
def test_quit_cancels(reply):
    with pytest.raises(ActionCancelledError):
        apply_context_edit("diff", reply)
