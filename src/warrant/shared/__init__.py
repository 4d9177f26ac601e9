"""Shared kernel: domain primitives, infrastructure and utilities."""
