"""Shared typed data models for earmark.

This package contains dataclasses used across catalog, session, and storage
modules to avoid cross-module coupling and circular imports.
"""

from .datatypes import (
    AudiobookIdentity,
    Bookmark,
    ChapterDescriptor,
    ContainerRange,
    PersistedState,
    PlayableUnit,
    PlaybackState,
    PlaybackStatus,
    SessionView,
    SourceMetadata,
    UnitSource,
    WholeFile,
)

__all__ = [
    "AudiobookIdentity",
    "Bookmark",
    "ChapterDescriptor",
    "ContainerRange",
    "PersistedState",
    "PlayableUnit",
    "PlaybackState",
    "PlaybackStatus",
    "SessionView",
    "SourceMetadata",
    "UnitSource",
    "WholeFile",
]
