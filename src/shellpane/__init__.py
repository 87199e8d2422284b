"""Embedded shell sessions with classified, filterable output history."""

__version__ = "0.1.0"
