"""Automatic role (system prompt) selection.

Detection runs in three layers: an explicit role always wins, then a local
keyword heuristic, then (in hybrid mode) a one-shot LLM classification.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence

from pydantic import BaseModel, ValidationError

from gaia.cache import ResponseCache
from gaia.exceptions import CacheError, GaiaError
from gaia.llm import LLMProvider, Message
from gaia.logging import get_logger

log = get_logger(__name__)


MIN_SCORE = 0.4
DESCRIBE_MIN_SCORE = 0.5
SPECIFIC_ROLE_MIN_SCORE = 0.2
PHRASE_SCORE_MULTIPLIER = 2.0
PATTERN_BONUS = 0.5
HEURISTIC_ACCEPT_SCORE = 0.3

REQUEST_PORTION_WORDS = 50
REQUEST_PORTION_CHARS = 500
SHELL_SHAPE_MAX_WORDS = 10
DESCRIBE_BOOST = 3
DESCRIBE_LEAD_WORDS = frozenset({"what", "explain", "describe", "tell", "how"})

CODE_PATTERNS = (
    re.compile(r"\b(def|class|function|const|let|var|import|from|return|if|else|for|while|try|catch)\b"),
    re.compile(r"[{}();]"),
    re.compile(r"\b(function|=>|->|::)\b"),
    re.compile(r"\b(public|private|protected|static|final|abstract)\b"),
)
SHELL_SHAPE = re.compile(r"^\s*\$?\s*[a-z]+(\s+\S+)*\s*$")

ROLE_CLASSIFIER_PROMPT = """You are a role classifier for a CLI tool. Analyze the following user message and determine which role is most appropriate.

Available roles: {roles}

User message: {message}

Respond with ONLY the role name (one word, lowercase) that best matches the user's intent. If none match well, respond with "default".

Role:"""


@dataclass
class HeuristicMatch:
    """Outcome of the keyword heuristic. An empty role means no match."""

    role: str = ""
    score: float = 0.0
    reason: str = "no strong match found"

    @property
    def matched(self) -> bool:
        return bool(self.role)


class DetectionResult(BaseModel):
    """Role chosen for one message and how it was chosen."""

    role: str
    method: Literal["explicit", "heuristic", "llm", "default"]
    score: float = 0.0
    reason: str = ""


def _request_portion(message_lower: str, words: list[str]) -> str:
    # Long inputs (a piped diff plus a question) keep the instruction at the end
    if len(words) > REQUEST_PORTION_WORDS:
        return " ".join(words[-REQUEST_PORTION_WORDS:])
    if len(message_lower) > REQUEST_PORTION_CHARS:
        return message_lower[-REQUEST_PORTION_CHARS:]
    return message_lower


def _words_in_order(text: str, words: Sequence[str]) -> bool:
    last_index = -1
    for word in words:
        idx = text.find(word, last_index + 1)
        if idx == -1:
            return False
        last_index = idx
    return True


def _phrase_covers_in_request(phrase: str, request: str, full: str) -> bool:
    if phrase in request:
        return True
    if _words_in_order(request, phrase.split()):
        return True
    return phrase in full


def _score_role(role: str, keywords: Sequence[str], message_lower: str, request: str, words: list[str]) -> float:
    matches = 0
    phrase_points = 0

    if role == "describe" and words and words[0] in DESCRIBE_LEAD_WORDS:
        matches += DESCRIBE_BOOST

    phrases = [kw for kw in keywords if " " in kw]
    singles = [kw for kw in keywords if " " not in kw]

    for phrase in phrases:
        phrase_words = phrase.split()
        if phrase in request:
            phrase_points += 4
            matches += 1
        elif phrase in message_lower:
            phrase_points += 2
            matches += 1
        elif len(phrase_words) >= 2:
            if _words_in_order(request, phrase_words):
                phrase_points += 3
                matches += 1
            elif _words_in_order(message_lower, phrase_words):
                phrase_points += 1
                matches += 1

    for word in singles:
        in_request = word in request
        if not in_request and word not in message_lower:
            continue
        # a word already counted through a matching phrase is not counted again
        counted = any(
            word in phrase.split() and _phrase_covers_in_request(phrase, request, message_lower)
            for phrase in phrases
        )
        if counted:
            continue
        matches += 2 if in_request else 1

    if matches <= 0:
        return 0.0
    score = matches / len(keywords)
    if phrase_points > 0:
        score = min(score * PHRASE_SCORE_MULTIPLIER, 1.0)
    return score


def _has_commit_or_branch_words(message_lower: str) -> bool:
    if "commit" in message_lower or "changelog" in message_lower:
        return True
    return "branch" in message_lower and any(
        word in message_lower for word in ("create", "new", "generate")
    )


def detect_role_heuristic(
    message: str,
    keywords_by_role: Mapping[str, Sequence[str]],
    available_roles: Sequence[str] | None = None,
) -> HeuristicMatch:
    """Score every candidate role against the message and pick the best one.

    Args:
        message: Raw user message
        keywords_by_role: Configured keyword lists; roles without keywords
            only receive the syntax bonuses
        available_roles: Candidate roles in priority order (defaults to the
            mapping's keys)

    Returns:
        HeuristicMatch with an empty role when nothing clears the threshold
    """
    roles = list(available_roles) if available_roles is not None else list(keywords_by_role)
    message_lower = str(message or "").strip().lower()
    words = message_lower.split()
    request = _request_portion(message_lower, words)

    scores: dict[str, float] = {}
    for role in roles:
        keywords = [str(kw).lower() for kw in keywords_by_role.get(role) or [] if str(kw).strip()]
        if not keywords:
            continue
        score = _score_role(role, keywords, message_lower, request, words)
        if score > 0:
            scores[role] = score

    if "code" in roles and any(pattern.search(str(message or "")) for pattern in CODE_PATTERNS):
        scores["code"] = min(scores.get("code", 0.0) + PATTERN_BONUS, 1.0)

    if (
        "shell" in roles
        and 0 < len(words) < SHELL_SHAPE_MAX_WORDS
        and not _has_commit_or_branch_words(message_lower)
        and SHELL_SHAPE.match(str(message or "").strip())
    ):
        scores["shell"] = min(scores.get("shell", 0.0) + PATTERN_BONUS, 1.0)

    best_role = ""
    best_score = 0.0
    for role in roles:
        score = scores.get(role, 0.0)
        if score > best_score:
            best_role, best_score = role, score

    threshold = DESCRIBE_MIN_SCORE if best_role == "describe" else MIN_SCORE

    # commit and branch are more specific than shell or code
    if best_role in ("shell", "code"):
        if scores.get("commit", 0.0) >= SPECIFIC_ROLE_MIN_SCORE:
            best_role, best_score = "commit", scores["commit"]
        elif scores.get("branch", 0.0) >= SPECIFIC_ROLE_MIN_SCORE:
            best_role, best_score = "branch", scores["branch"]

    if best_role and best_score >= threshold:
        keyword_count = len(keywords_by_role.get(best_role) or [])
        return HeuristicMatch(
            role=best_role,
            score=best_score,
            reason=f"matched {int(best_score * keyword_count)} keywords with score {best_score:.2f}",
        )
    return HeuristicMatch()


def build_detection_cache_key(message: str, available_roles: Sequence[str]) -> str:
    payload = json.dumps(
        {"message": message, "available_roles": list(available_roles)},
        ensure_ascii=False,
    )
    return "detection_" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def normalize_role_reply(reply: str) -> str:
    """Reduce a classifier reply like ` "Shell." ` to `shell`."""
    cleaned = str(reply or "").strip().lower().strip("\"'`")
    parts = cleaned.split()
    if not parts:
        return ""
    first = parts[0]
    if first.endswith((".", ",")):
        first = first[:-1]
    return first


async def classify_role_with_llm(
    provider: LLMProvider,
    message: str,
    available_roles: Sequence[str],
    system_prompt: str = "",
) -> tuple[str, str]:
    """Ask the model to pick a role. Returns (role, reason).

    The request is isolated from any chat history.
    """
    prompt = ROLE_CLASSIFIER_PROMPT.format(roles=", ".join(available_roles), message=message)
    messages = [Message(role="system", content=system_prompt), Message(role="user", content=prompt)]
    response = await provider.complete(messages)
    detected = normalize_role_reply(response.content)
    if detected in available_roles:
        return detected, "LLM selected based on message analysis"
    return "default", "LLM did not match any available role, using default"


@dataclass
class AutoRoleSettings:
    """Detection policy handed in by the caller."""

    enabled: bool = True
    mode: str = "hybrid"
    keywords: dict[str, list[str]] = field(default_factory=dict)


class RoleDetector:
    """Chooses a role for each message."""

    def __init__(
        self,
        settings: AutoRoleSettings,
        roles: Sequence[str],
        provider: LLMProvider | None = None,
        cache: ResponseCache | None = None,
        classifier_system_prompt: str = "",
    ):
        self.settings = settings
        self.roles = list(roles) if "default" in roles else ["default", *roles]
        self.provider = provider
        self.cache = cache
        self.classifier_system_prompt = classifier_system_prompt

    def _read_cached(self, key: str) -> DetectionResult | None:
        if self.cache is None:
            return None
        data: Any = self.cache.get_json(key)
        if not isinstance(data, dict):
            return None
        try:
            return DetectionResult.model_validate(data)
        except ValidationError:
            log.warning("Ignoring malformed cached role detection", key=key)
            return None

    async def detect(self, message: str, explicit_role: str = "") -> DetectionResult:
        """Pick the role for `message`."""
        if not self.settings.enabled:
            return DetectionResult(role="default", method="default", reason="auto-role detection disabled")

        if explicit_role:
            log.debug("Using explicit role", role=explicit_role)
            return DetectionResult(role=explicit_role, method="explicit", reason="role explicitly provided")

        cache_key = build_detection_cache_key(message, self.roles)
        cached = self._read_cached(cache_key)
        if cached is not None:
            log.debug("Using cached role detection", role=cached.role, method=cached.method, reason=cached.reason)
            return cached

        mode = self.settings.mode or "hybrid"
        result: DetectionResult | None = None

        if mode in ("heuristic", "hybrid"):
            match = detect_role_heuristic(message, self.settings.keywords, self.roles)
            if match.matched and match.score > HEURISTIC_ACCEPT_SCORE:
                result = DetectionResult(
                    role=match.role, method="heuristic", score=match.score, reason=match.reason
                )

        if result is None and mode == "hybrid" and self.provider is not None:
            try:
                role, reason = await classify_role_with_llm(
                    self.provider, message, self.roles, self.classifier_system_prompt
                )
                result = DetectionResult(role=role, method="llm", reason=reason)
            except GaiaError as e:
                log.debug("LLM role detection failed, falling back to default", error=str(e))

        if result is None:
            result = DetectionResult(role="default", method="default", reason="no role detected, using default")

        if self.cache is not None:
            try:
                self.cache.put_json(cache_key, result.model_dump())
            except CacheError as e:
                log.warning("Failed to cache role detection", error=str(e))

        log.debug(
            "Auto-detected role",
            role=result.role,
            method=result.method,
            score=round(result.score, 2),
            reason=result.reason,
        )
        return result
