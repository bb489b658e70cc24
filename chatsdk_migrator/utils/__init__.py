"""Utility modules for the migration tool."""

__all__ = [
    "logging",
]
