"""Claim extraction from LLM narratives."""

from warrant.claims.extractor import (
    ClaimExtractor,
    ClaimPattern,
    PatternClaimExtractor,
    feature_scope,
)

__all__ = ["ClaimExtractor", "ClaimPattern", "PatternClaimExtractor", "feature_scope"]
