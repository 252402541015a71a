import pytest

from gaia.config import DEFAULT_ROLE_KEYWORDS, Config
from gaia.roles import HeuristicMatch, detect_role_heuristic, normalize_role_reply

ROLES = Config().available_roles()


def test_commit_phrases_pick_commit():
    match = detect_role_heuristic("generate git commit message", DEFAULT_ROLE_KEYWORDS, ROLES)
    assert match.role == "commit"
    assert match.score == pytest.approx(0.6)


def test_question_picks_describe():
    match = detect_role_heuristic("what is x", DEFAULT_ROLE_KEYWORDS, ROLES)
    assert match.role == "describe"
    assert match.score == pytest.approx(8 / 11)


def test_short_command_shape_picks_shell():
    match = detect_role_heuristic("run ls -la", DEFAULT_ROLE_KEYWORDS, ROLES)
    assert match.role == "shell"
    assert match.score >= 0.5


def test_shell_shape_bonus_without_keywords():
    match = detect_role_heuristic("hello", {}, ["default", "shell"])
    assert match.role == "shell"
    assert match.score == pytest.approx(0.5)


def test_shell_shape_bonus_skipped_for_commit_words():
    assert not detect_role_heuristic("commit", {}, ["default", "shell"]).matched


def test_shell_shape_bonus_skipped_for_long_input():
    assert not detect_role_heuristic("ls " * 5000, {}, ["default", "shell"]).matched
    assert not detect_role_heuristic("ls -la " * 5, {}, ["default", "shell"]).matched


def test_code_syntax_bonus():
    match = detect_role_heuristic("def foo(): return 1", {}, ["default", "code"])
    assert match.role == "code"
    assert match.score == pytest.approx(0.5)


def test_commit_overrides_shell_when_strong_enough():
    keywords = {"shell": ["run", "ls"], "commit": ["commit", "a1", "b2", "c3", "d4"]}
    match = detect_role_heuristic("run ls commit", keywords, ["default", "shell", "commit"])
    assert match.role == "commit"
    assert match.score == pytest.approx(0.4)


def test_roles_without_keywords_are_not_scored():
    match = detect_role_heuristic("please summarize the quarterly numbers", {"describe": []}, ["default", "describe"])
    assert match == HeuristicMatch()
    assert match.reason == "no strong match found"


def test_describe_needs_higher_score():
    keywords = {"describe": ["meaning", "k1", "k2", "k3", "k4", "k5", "k6", "k7", "k8", "k9"]}
    # 2 matches over 10 keywords: 0.2 is below the describe threshold
    assert not detect_role_heuristic("the meaning of life", keywords, ["default", "describe"]).matched


def test_matched_reason_mentions_score():
    match = detect_role_heuristic("generate git commit message", DEFAULT_ROLE_KEYWORDS, ROLES)
    assert match.reason.endswith("with score 0.60")


def test_long_input_uses_trailing_request():
    diff = " ".join(["+ line"] * 60)
    message = f"{diff} generate git commit message"
    assert detect_role_heuristic(message, DEFAULT_ROLE_KEYWORDS, ROLES).role == "commit"


@pytest.mark.parametrize(
    ("reply", "expected"),
    [
        ("shell", "shell"),
        ("  Shell.  ", "shell"),
        ('"code"', "code"),
        ("describe, because it asks", "describe"),
        ("", ""),
    ],
)
def test_normalize_role_reply(reply, expected):
    assert normalize_role_reply(reply) == expected
