"""
Reports domain layer.

Contains report domain models.
"""

from warrant.reports.domain.models import Issue, IssueKind

__all__ = [
    "Issue",
    "IssueKind",
]
