"""Report rendering for validation runs."""

from warrant.reports.generator import ReportGenerator

__all__ = ["ReportGenerator"]
