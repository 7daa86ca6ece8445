"""Input/output helpers for earmark.

This package persists per-audiobook session records.
"""

from .storage import FORMAT_VERSION, StateStore

__all__ = ["FORMAT_VERSION", "StateStore"]
