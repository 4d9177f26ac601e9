"""
Claim extraction.

Turns an LLM narrative into structured Claims. The pipeline only depends on
the ClaimExtractor protocol; PatternClaimExtractor is the deterministic
default, a table of success phrases mapped to scopes.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Protocol, Sequence

from warrant.pipeline.domain.models import Claim
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ClaimExtractor(Protocol):
    """Collaborator contract: narrative text in, structured claims out."""

    def extract(self, text: str) -> List[Claim]:
        ...


@dataclass(frozen=True)
class ClaimPattern:
    """A success phrase and the scope it asserts something about."""

    scope: str
    pattern: Pattern[str]
    confidence: float = 0.9


def _p(regex: str) -> Pattern[str]:
    return re.compile(regex, re.IGNORECASE)


DEFAULT_PATTERNS: tuple[ClaimPattern, ...] = (
    ClaimPattern("build", _p(r"\b(builds?|compiles?|compilation)\s+(now\s+)?(successfully|succeeds?|succeeded|passes|cleanly|without (errors|warnings))\b")),
    ClaimPattern("build", _p(r"\b(successfully|cleanly)\s+(builds?|built|compiles?|compiled)\b")),
    ClaimPattern("tests", _p(r"\b(all\s+)?(the\s+)?(unit\s+)?(?<!integration )(?<!e2e )(?<!end )(?<!end-)tests\s+(now\s+)?(pass|passed|passing|are passing|succeed|succeeded|are green)\b")),
    ClaimPattern("tests", _p(r"\btest suite\s+(passes|passed|is green)\b")),
    ClaimPattern("e2e", _p(r"\b(e2e|end[- ]to[- ]end|integration)\s+tests?\s+(now\s+)?(pass|passed|passing|succeed|succeeded)\b")),
    ClaimPattern("lint", _p(r"\bno\s+(remaining\s+)?(clippy|lint|linter)\s+(warnings|errors|issues)\b")),
    ClaimPattern("lint", _p(r"\b(clippy|linting|lint)\s+(is\s+)?(clean|passes|passed)\b")),
    ClaimPattern("format", _p(r"\b(properly|correctly|consistently)\s+formatted\b")),
    ClaimPattern("format", _p(r"\b(formatting|cargo fmt|rustfmt|prettier)\s+(is\s+)?(clean|passes|passed|applied)\b")),
    ClaimPattern("docs", _p(r"\b(documentation|docs)\s+(is\s+|are\s+)?(generated|builds?|built|complete)\b")),
    ClaimPattern("security", _p(r"\bno\s+(known\s+)?(security\s+)?vulnerabilit(y|ies)\b")),
    ClaimPattern("security", _p(r"\bsecurity\s+audit\s+(passes|passed|is clean)\b")),
    ClaimPattern("wasm", _p(r"\b(wasm|webassembly)\s+(build|target|bundle)\s+(works|succeeds|succeeded|compiles|passes)\b")),
    ClaimPattern("wasm", _p(r"\bcross[- ]platform\s+builds?\s+(works?|succeeds?|succeeded|pass(es)?)\b")),
)

# "implemented the X feature" / "X support is implemented": nothing runs a feature
# directly, so these stay UNVERIFIABLE unless a scope mapping names a step.
FEATURE_PATTERNS: tuple[Pattern[str], ...] = (
    _p(r"\b(?:implemented|added)\s+(?:the\s+|a\s+|an\s+)?(?P<name>[a-z][\w\- ]{1,40}?)\s+(?:feature|module|support|functionality)\b"),
    _p(r"\b(?P<name>[a-z][\w\-]{1,40}(?:\s[\w\-]{1,40})?)\s+(?:feature|module|support)\s+(?:is|has been)\s+(?:fully\s+)?implemented\b"),
)
FEATURE_CONFIDENCE = 0.6

_NEGATION = _p(r"\b(not|never|no longer|cannot|can't|don't|doesn't|isn't|aren't|won't|fail(?:s|ed)? to)\b")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


def feature_scope(name: str) -> str:
    """Normalize a feature name to a claim scope, e.g. 'Dark Mode' -> 'feature:dark-mode'."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return f"feature:{slug}"


class PatternClaimExtractor:
    """
    Sentence-by-sentence regex extractor.

    A match preceded by a negation in the same sentence ("not all tests
    pass") is ignored. Each scope is claimed at most once, by its first
    sentence.
    """

    def __init__(
        self,
        patterns: Optional[Sequence[ClaimPattern]] = None,
        detect_features: bool = True,
    ):
        self.patterns = tuple(patterns) if patterns is not None else DEFAULT_PATTERNS
        self.detect_features = detect_features

    def extract(self, text: str) -> List[Claim]:
        claims: List[Claim] = []
        seen: set[str] = set()

        for raw in _SENTENCE_SPLIT.split(text):
            sentence = raw.strip().lstrip("-*#> ").strip()
            if not sentence:
                continue

            for claim_pattern in self.patterns:
                if claim_pattern.scope in seen:
                    continue
                match = claim_pattern.pattern.search(sentence)
                if match and not self._negated(sentence, match.start()):
                    seen.add(claim_pattern.scope)
                    claims.append(Claim(text=sentence, scope=claim_pattern.scope, confidence=claim_pattern.confidence))

            if self.detect_features:
                for feature_pattern in FEATURE_PATTERNS:
                    match = feature_pattern.search(sentence)
                    if not match or self._negated(sentence, match.start()):
                        continue
                    scope = feature_scope(match.group("name"))
                    if scope not in seen:
                        seen.add(scope)
                        claims.append(Claim(text=sentence, scope=scope, confidence=FEATURE_CONFIDENCE))

        logger.info("claims_extracted", count=len(claims), scopes=[c.scope for c in claims])
        return claims

    @staticmethod
    def _negated(sentence: str, match_start: int) -> bool:
        return bool(_NEGATION.search(sentence[:match_start]))
