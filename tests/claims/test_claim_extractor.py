"""
Tests for PatternClaimExtractor.

The extractor is deterministic: the same narrative always yields the same
claims in the same order.
"""

import re

import pytest

from warrant.claims.extractor import ClaimPattern, PatternClaimExtractor, feature_scope


@pytest.fixture
def extractor():
    return PatternClaimExtractor()


def _scopes(claims):
    return [claim.scope for claim in claims]


class TestPatternClaimExtractor:
    """Test claim extraction from narratives."""

    def test_typical_success_narrative(self, extractor):
        narrative = (
            "## Summary\n"
            "- The project builds successfully.\n"
            "- All tests pass.\n"
            "- No clippy warnings remain.\n"
            "- The code is properly formatted.\n"
            "- There are no known vulnerabilities.\n"
        )

        claims = extractor.extract(narrative)

        assert _scopes(claims) == ["build", "tests", "lint", "format", "security"]
        assert claims[1].text == "All tests pass."

    @pytest.mark.parametrize("sentence,scope", [
        ("cargo build succeeded without errors.", "build"),
        ("It compiles cleanly now.", "build"),
        ("The test suite is green.", "tests"),
        ("Integration tests passed.", "e2e"),
        ("Clippy is clean.", "lint"),
        ("Documentation is generated.", "docs"),
        ("The wasm build works.", "wasm"),
        ("Security audit passed.", "security"),
    ])
    def test_phrases(self, extractor, sentence, scope):
        assert _scopes(extractor.extract(sentence)) == [scope]

    @pytest.mark.parametrize("sentence", [
        "Not all tests pass yet.",
        "The build doesn't compile cleanly.",
        "I could not get the tests passing.",
    ])
    def test_negated_claims_ignored(self, extractor, sentence):
        assert extractor.extract(sentence) == []

    def test_scope_claimed_once(self, extractor):
        claims = extractor.extract("All tests pass. The test suite passed again.")

        assert _scopes(claims) == ["tests"]
        assert claims[0].text == "All tests pass."

    def test_feature_claims(self, extractor):
        claims = extractor.extract("I implemented the dark mode feature. CSV export support is implemented.")

        assert _scopes(claims) == ["feature:dark-mode", "feature:csv-export"]
        assert all(claim.confidence == 0.6 for claim in claims)

    def test_feature_detection_optional(self):
        extractor = PatternClaimExtractor(detect_features=False)

        assert extractor.extract("I implemented the dark mode feature.") == []

    def test_custom_patterns(self):
        extractor = PatternClaimExtractor(
            patterns=[ClaimPattern("bench", re.compile(r"benchmarks improved", re.IGNORECASE), confidence=0.7)],
        )

        [claim] = extractor.extract("Benchmarks improved by 20%.")

        assert claim.scope == "bench"
        assert claim.confidence == 0.7

    def test_empty_narrative(self, extractor):
        assert extractor.extract("") == []

    def test_deterministic(self, extractor):
        narrative = "All tests pass. The build succeeded."

        assert extractor.extract(narrative) == extractor.extract(narrative)

    def test_feature_scope_slug(self):
        assert feature_scope("  Dark Mode ") == "feature:dark-mode"
