"""Listening-session components: state, bookmarks, antispoiler, and playback bridge."""

from .antispoiler import visible_rows, visible_titles
from .bookmarks import BookmarkStore, describe_bookmark
from .controller import (
    EndOfStream,
    EngineFailure,
    PlaybackController,
    PlaybackEngine,
    PositionTick,
)
from .messages import StatusMessages
from .orchestrator import CommandKind, ListeningSession, UserCommand
from .state import OVERSHOOT_POLICY, SessionStateManager, TickOutcome

__all__ = [
    "BookmarkStore",
    "CommandKind",
    "EndOfStream",
    "EngineFailure",
    "ListeningSession",
    "OVERSHOOT_POLICY",
    "PlaybackController",
    "PlaybackEngine",
    "PositionTick",
    "SessionStateManager",
    "StatusMessages",
    "TickOutcome",
    "UserCommand",
    "describe_bookmark",
    "visible_rows",
    "visible_titles",
]
