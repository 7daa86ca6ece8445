"""Bookmark bookkeeping for the current audiobook.

Responsibilities:
- Create bookmarks from playback snapshots and validate their positions.
- Keep display order deterministic: unit index, then offset, then insertion.
- Treat removal of unknown ids as a no-op.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from ..errors import InvalidPosition
from ..models.datatypes import Bookmark, PlaybackState
from ..parsing import format_position, normalize_optional_string


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def describe_bookmark(bookmark: Bookmark) -> str:
    """Return a `"label" at 1m5s` style display string."""

    label = bookmark.label if bookmark.label is not None else "(unnamed)"
    return f'"{label}" at {format_position(bookmark.offset_ms)}'


class BookmarkStore:
    """Ordered collection of user bookmarks."""

    def __init__(
        self,
        bookmarks: Iterable[Bookmark] = (),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Seed the store with persisted bookmarks in their saved insertion order."""

        self._items: list[Bookmark] = list(bookmarks)
        self._clock = clock

    def add(
        self,
        state: PlaybackState,
        label: str | None = None,
        duration_ms: int | None = None,
    ) -> Bookmark:
        """Create a bookmark at the unit and offset of a playback snapshot.

        Args:
            state: Snapshot whose `unit_index` and `offset_ms` are bookmarked.
            label: Optional user label; blank labels are stored as `None`.
            duration_ms: Known duration of the addressed unit, if any.

        Raises:
            InvalidPosition: If the offset is negative or exceeds a known
                unit duration.
        """

        if state.offset_ms < 0 or (duration_ms is not None and state.offset_ms > duration_ms):
            raise InvalidPosition(
                f"Bookmark offset {state.offset_ms} ms is outside unit {state.unit_index + 1}."
            )

        created = self._clock()
        known_ids = {item.bookmark_id for item in self._items}
        while True:
            created_at = created.isoformat(timespec="microseconds")
            bookmark_id = Bookmark.derive_id(state.unit_index, state.offset_ms, created_at)
            if bookmark_id not in known_ids:
                break
            created += timedelta(microseconds=1)

        bookmark = Bookmark(
            bookmark_id=bookmark_id,
            unit_index=state.unit_index,
            offset_ms=state.offset_ms,
            label=normalize_optional_string(label),
            created_at=created_at,
        )
        self._items.append(bookmark)
        return bookmark

    def remove(self, bookmark_id: str) -> bool:
        """Remove a bookmark; return whether anything was removed."""

        for position, item in enumerate(self._items):
            if item.bookmark_id == bookmark_id:
                del self._items[position]
                return True
        return False

    def rename(self, bookmark_id: str, label: str | None) -> Bookmark:
        """Replace a bookmark's label, the only mutable bookmark field."""

        for position, item in enumerate(self._items):
            if item.bookmark_id == bookmark_id:
                renamed = replace(item, label=normalize_optional_string(label))
                self._items[position] = renamed
                return renamed
        raise InvalidPosition(f"Unknown bookmark `{bookmark_id}`.")

    def list(self) -> tuple[Bookmark, ...]:
        """Return bookmarks ordered by unit index, offset, then insertion order."""

        ordered = sorted(
            enumerate(self._items),
            key=lambda pair: (pair[1].unit_index, pair[1].offset_ms, pair[0]),
        )
        return tuple(item for _, item in ordered)

    def for_unit(self, unit_index: int) -> tuple[Bookmark, ...]:
        """Return the ordered bookmarks inside one unit."""

        return tuple(item for item in self.list() if item.unit_index == unit_index)

    def get(self, bookmark_id: str) -> Bookmark | None:
        for item in self._items:
            if item.bookmark_id == bookmark_id:
                return item
        return None

    def jump_target(self, bookmark_id: str) -> tuple[int, int]:
        """Return `(unit_index, offset_ms)` for a bookmark.

        Raises:
            InvalidPosition: If the bookmark id is unknown.
        """

        bookmark = self.get(bookmark_id)
        if bookmark is None:
            raise InvalidPosition(f"Unknown bookmark `{bookmark_id}`.")
        return bookmark.unit_index, bookmark.offset_ms

    def snapshot(self) -> tuple[Bookmark, ...]:
        """Return bookmarks in insertion order for persistence."""

        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)
