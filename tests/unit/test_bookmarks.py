"""Unit tests for bookmark creation, ordering, and removal."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from earmark.errors import InvalidPosition
from earmark.models.datatypes import Bookmark, PlaybackState
from earmark.session.bookmarks import BookmarkStore, describe_bookmark


class _FrozenClock:
    """Clock that returns the same instant unless advanced explicitly."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _at(unit_index: int, offset_ms: int) -> PlaybackState:
    return PlaybackState(unit_index=unit_index, offset_ms=offset_ms)


def test_add_derives_stable_id_and_normalizes_label() -> None:
    """Bookmarks should carry a derived id, a UTC timestamp, and a trimmed label."""

    store = BookmarkStore(clock=_FrozenClock())

    bookmark = store.add(_at(1, 61_000), label="  the dragon  ", duration_ms=100_000)

    assert bookmark.created_at == "2026-03-01T12:00:00.000000+00:00"
    assert bookmark.bookmark_id == Bookmark.derive_id(1, 61_000, bookmark.created_at)
    assert bookmark.label == "the dragon"
    assert describe_bookmark(bookmark) == '"the dragon" at 1m1s'


def test_add_same_position_twice_at_same_instant_yields_distinct_ids() -> None:
    """Several bookmarks may share a unit and even an offset."""

    store = BookmarkStore(clock=_FrozenClock())

    first = store.add(_at(0, 5_000))
    second = store.add(_at(0, 5_000))

    assert first.bookmark_id != second.bookmark_id
    assert len(store) == 2
    assert describe_bookmark(first) == '"(unnamed)" at 5s'


def test_add_rejects_offsets_outside_the_unit() -> None:
    """Offsets past a known duration should raise `InvalidPosition`."""

    store = BookmarkStore()

    with pytest.raises(InvalidPosition, match="outside unit 2"):
        store.add(_at(1, 100_001), duration_ms=100_000)
    assert store.add(_at(1, 100_000), duration_ms=100_000).offset_ms == 100_000
    assert store.add(_at(1, 999_999), duration_ms=None).offset_ms == 999_999


def test_list_orders_by_unit_offset_then_insertion() -> None:
    """Display order is unit index, then offset, then insertion order."""

    clock = _FrozenClock()
    store = BookmarkStore(clock=clock)
    late = store.add(_at(2, 0), label="late")
    clock.now += timedelta(seconds=1)
    second_at_ten = store.add(_at(0, 10_000), label="b")
    clock.now += timedelta(seconds=1)
    early = store.add(_at(0, 1_000), label="early")
    clock.now += timedelta(seconds=1)
    third_at_ten = store.add(_at(0, 10_000), label="c")

    assert store.list() == (early, second_at_ten, third_at_ten, late)
    assert store.for_unit(0) == (early, second_at_ten, third_at_ten)
    assert store.snapshot() == (late, second_at_ten, early, third_at_ten)


def test_remove_is_idempotent() -> None:
    """Removing twice succeeds once and then is a silent no-op."""

    store = BookmarkStore()
    bookmark = store.add(_at(0, 1_000))

    assert store.remove(bookmark.bookmark_id) is True
    assert store.remove(bookmark.bookmark_id) is False
    assert store.remove("bk-unknown") is False
    assert bookmark not in store.list()


def test_jump_target_and_rename() -> None:
    """Jump targets expose the position; rename only changes the label."""

    store = BookmarkStore()
    bookmark = store.add(_at(1, 2_500), label="old")

    renamed = store.rename(bookmark.bookmark_id, " new ")

    assert store.jump_target(bookmark.bookmark_id) == (1, 2_500)
    assert renamed.label == "new"
    assert renamed.bookmark_id == bookmark.bookmark_id
    assert renamed.created_at == bookmark.created_at
    with pytest.raises(InvalidPosition, match="Unknown bookmark"):
        store.jump_target("bk-missing")
    with pytest.raises(InvalidPosition):
        store.rename("bk-missing", "x")


def test_store_seeded_from_persisted_bookmarks_keeps_insertion_order() -> None:
    """Restored bookmarks keep their saved order as the insertion tiebreak."""

    saved = (
        Bookmark("bk-2", 0, 100, "second", "2026-01-01T00:00:02+00:00"),
        Bookmark("bk-1", 0, 100, "first", "2026-01-01T00:00:01+00:00"),
    )

    store = BookmarkStore(saved)

    assert [item.bookmark_id for item in store.list()] == ["bk-2", "bk-1"]
    assert store.get("bk-1") == saved[1]
