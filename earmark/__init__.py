"""Top-level package for earmark.

This package manages audiobook listening sessions: it resolves a source into
navigable units, tracks the playback position, persists where the listener
left off, keeps bookmarks, and hides chapter titles that would spoil the
story. The main entry point is `ListeningSession`.
"""

from .session.orchestrator import ListeningSession

__all__ = ["ListeningSession", "__version__"]

__version__ = "0.1.0"
