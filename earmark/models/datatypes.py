"""Core datatypes shared across earmark modules.

Responsibilities:
- Represent immutable records exchanged between catalog, session, and storage.
- Provide explicit typing for persistence and deterministic serialization.

Key types:
- `AudiobookIdentity`, `ChapterDescriptor`, `SourceMetadata`, `WholeFile`,
  `ContainerRange`, `PlayableUnit`, `PlaybackStatus`, `PlaybackState`,
  `Bookmark`, `PersistedState`, and `SessionView`.

All positions and durations are integer milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import hashlib
from pathlib import Path
from typing import Mapping, Union


@dataclass(frozen=True, slots=True)
class AudiobookIdentity:
    """Stable key used to associate persisted session data with one source.

    Attributes:
        key: Hex digest derived from the resolved absolute source path.
        source_path: Resolved absolute source path.
    """

    key: str
    source_path: Path

    @classmethod
    def from_path(cls, path: Path) -> AudiobookIdentity:
        """Derive an identity from a filesystem path.

        The path is resolved first, so relative and absolute spellings of the
        same file map to the same key across runs.
        """

        resolved = Path(path).expanduser().resolve()
        digest = hashlib.sha256(str(resolved).encode("utf-8")).hexdigest()
        return cls(key=digest, source_path=resolved)


@dataclass(frozen=True, slots=True)
class ChapterDescriptor:
    """Raw chapter boundary reported by a metadata reader.

    Attributes:
        title: Chapter title from the container, or `None` when missing/blank.
        start_ms: Chapter start offset from the beginning of the container.
        duration_ms: Chapter duration when reported by the reader.
    """

    title: str | None
    start_ms: int
    duration_ms: int | None = None


@dataclass(frozen=True, slots=True)
class SourceMetadata:
    """Raw tag and chapter metadata for one audio file.

    Attributes:
        path: File the metadata was read from.
        title: Tag title, if present.
        album: Tag album, if present.
        artist: Tag artist, if present.
        track_number: Tag track number, if present.
        duration_ms: Total file duration, if known.
        chapters: Chapters in reported order; empty for plain audio files.
    """

    path: Path
    title: str | None = None
    album: str | None = None
    artist: str | None = None
    track_number: int | None = None
    duration_ms: int | None = None
    chapters: tuple[ChapterDescriptor, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class WholeFile:
    """Unit source spanning an entire audio file."""

    path: Path


@dataclass(frozen=True, slots=True)
class ContainerRange:
    """Unit source addressing one time range inside a chapterized container."""

    path: Path
    start_ms: int
    end_ms: int | None


UnitSource = Union[WholeFile, ContainerRange]


@dataclass(frozen=True, slots=True)
class PlayableUnit:
    """One navigable segment of audio.

    Attributes:
        index: 0-based contiguous position in the catalog.
        title: Display title from metadata or a generated `Chapter N` fallback.
        duration_ms: Unit duration, or `None` when unknown.
        source: Where the engine should read this unit from.
    """

    index: int
    title: str
    duration_ms: int | None
    source: UnitSource


class PlaybackStatus(str, Enum):
    """Rest states of the playback state machine."""

    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True, slots=True)
class PlaybackState:
    """Immutable snapshot of the live playback position.

    Attributes:
        unit_index: Index of the currently selected unit.
        offset_ms: Position within the selected unit.
        speed: Playback rate multiplier.
        volume: Output volume in `[0.0, 1.0]`.
        status: Current rest state.
    """

    unit_index: int = 0
    offset_ms: int = 0
    speed: float = 1.0
    volume: float = 0.5
    status: PlaybackStatus = PlaybackStatus.STOPPED


@dataclass(frozen=True, slots=True)
class Bookmark:
    """User-created marker inside one unit.

    Attributes:
        bookmark_id: Stable token derived from unit index, offset, and timestamp.
        unit_index: Unit the bookmark points into.
        offset_ms: Position within the unit.
        label: Optional user label.
        created_at: UTC ISO-8601 creation timestamp.
    """

    bookmark_id: str
    unit_index: int
    offset_ms: int
    label: str | None
    created_at: str

    @staticmethod
    def derive_id(unit_index: int, offset_ms: int, created_at: str) -> str:
        """Return the deterministic identifier for a bookmark triple."""

        digest = hashlib.sha256(
            f"{unit_index}:{offset_ms}:{created_at}".encode("utf-8")
        ).hexdigest()
        return f"bk-{digest[:10]}"


@dataclass(frozen=True, slots=True)
class PersistedState:
    """Serialized session record stored per audiobook identity.

    Attributes:
        format_version: Schema version of the record.
        source_path: Resolved source path, kept for diagnostics.
        unit_index: Saved unit index.
        offset_ms: Saved position within the unit.
        speed: Saved playback rate.
        volume: Saved output volume.
        antispoiler: Whether antispoiler mode was enabled.
        bookmarks: Saved bookmarks.
        descriptions: User notes keyed by unit index.
        unit_positions: Last offset heard in other units, keyed by unit index.
        saved_at: UTC ISO-8601 save timestamp.
    """

    format_version: int
    source_path: str
    unit_index: int
    offset_ms: int
    speed: float
    volume: float
    antispoiler: bool
    bookmarks: tuple[Bookmark, ...] = field(default_factory=tuple)
    descriptions: Mapping[int, str] = field(default_factory=dict)
    unit_positions: Mapping[int, int] = field(default_factory=dict)
    saved_at: str = ""


@dataclass(frozen=True, slots=True)
class SessionView:
    """Everything the UI layer needs to render one frame of session state.

    Attributes:
        unit_index: Current unit index.
        unit_title: Current unit title (masked titles never appear here
            because the current unit is always revealed).
        unit_count: Number of units in the catalog.
        offset_ms: Position within the current unit.
        duration_ms: Current unit duration, if known.
        speed: Playback rate.
        volume: Output volume.
        status: Playback status.
        antispoiler: Whether antispoiler mode is active.
        chapters: Visible (possibly masked) chapter labels.
        bookmarks: Bookmarks in display order.
        messages: Status messages produced since the previous view.
    """

    unit_index: int
    unit_title: str
    unit_count: int
    offset_ms: int
    duration_ms: int | None
    speed: float
    volume: float
    status: PlaybackStatus
    antispoiler: bool
    chapters: tuple[str, ...]
    bookmarks: tuple[Bookmark, ...]
    messages: tuple[str, ...] = field(default_factory=tuple)
