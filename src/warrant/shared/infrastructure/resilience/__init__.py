"""
Resilience Patterns for Warrant.

Provides the retry policy applied to idempotent-safe steps.
"""

from .retry import NO_RETRY, RetryPolicy

__all__ = [
    "NO_RETRY",
    "RetryPolicy",
]
