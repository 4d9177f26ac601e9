"""Warrant - verifies LLM success claims against real build, test and audit results."""

__version__ = "0.1.0"
