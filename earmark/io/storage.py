"""Persistent per-audiobook session storage.

Responsibilities:
- Map `AudiobookIdentity` keys to one JSON record file each.
- Write records atomically (temporary file, fsync, replace) so a crash during
  a save never damages the previously good record.
- Validate record schema and version on load; anything unreadable surfaces as
  `PersistedStateCorrupt`.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
import tempfile
from typing import Any, Mapping

from ..errors import PersistedStateCorrupt
from ..models.datatypes import AudiobookIdentity, Bookmark, PersistedState
from ..parsing import normalize_optional_string
from ..telemetry.logger import SessionLogger

FORMAT_VERSION = 1


def state_to_payload(state: PersistedState) -> dict[str, object]:
    """Serialize a `PersistedState` snapshot into a JSON-compatible payload."""

    return {
        "format_version": state.format_version,
        "source_path": state.source_path,
        "unit_index": state.unit_index,
        "offset_ms": state.offset_ms,
        "speed": state.speed,
        "volume": state.volume,
        "antispoiler": state.antispoiler,
        "bookmarks": [
            {
                "id": bookmark.bookmark_id,
                "unit_index": bookmark.unit_index,
                "offset_ms": bookmark.offset_ms,
                "label": bookmark.label,
                "created_at": bookmark.created_at,
            }
            for bookmark in state.bookmarks
        ],
        "descriptions": {
            str(index): text for index, text in sorted(state.descriptions.items())
        },
        "unit_positions": {
            str(index): offset for index, offset in sorted(state.unit_positions.items())
        },
        "saved_at": state.saved_at,
    }


def state_from_payload(payload: object) -> PersistedState:
    """Validate and deserialize a record payload.

    Raises:
        PersistedStateCorrupt: If the payload shape, field types, or format
            version are not supported.
    """

    if not isinstance(payload, Mapping):
        raise PersistedStateCorrupt("Record root must be a JSON object.")

    version = payload.get("format_version")
    if not _is_int(version) or version != FORMAT_VERSION:
        raise PersistedStateCorrupt(
            f"Unsupported record format version `{version}` (expected {FORMAT_VERSION})."
        )

    return PersistedState(
        format_version=FORMAT_VERSION,
        source_path=str(payload.get("source_path") or ""),
        unit_index=_require_non_negative_int(payload, "unit_index"),
        offset_ms=_require_non_negative_int(payload, "offset_ms"),
        speed=_require_positive_number(payload, "speed"),
        volume=min(1.0, max(0.0, _require_number(payload, "volume"))),
        antispoiler=_require_bool(payload, "antispoiler"),
        bookmarks=_parse_bookmarks(payload.get("bookmarks", [])),
        descriptions=_parse_descriptions(payload.get("descriptions", {})),
        unit_positions=_parse_unit_positions(payload.get("unit_positions", {})),
        saved_at=str(payload.get("saved_at") or ""),
    )


class StateStore:
    """Filesystem-backed keyed store of persisted session records."""

    def __init__(self, root: Path, logger: SessionLogger | None = None) -> None:
        """Initialize the store with the directory holding record files."""

        self.root = root
        self._logger = logger

    def record_path(self, identity: AudiobookIdentity) -> Path:
        """Return the record file path for an identity."""

        return self.root / f"{identity.key}.json"

    def exists(self, identity: AudiobookIdentity) -> bool:
        """Return whether a record exists for the identity."""

        return self.record_path(identity).exists()

    def load(self, identity: AudiobookIdentity) -> PersistedState | None:
        """Load the record for an identity.

        Returns:
            The saved state, or `None` when no record exists.

        Raises:
            PersistedStateCorrupt: If the record exists but cannot be used.
        """

        path = self.record_path(identity)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistedStateCorrupt(f"Record `{path.name}` is not readable JSON: {exc}") from exc

        state = state_from_payload(payload)
        if self._logger is not None:
            self._logger.info("persistence", "load", key=identity.key[:12])
        return state

    def save(self, identity: AudiobookIdentity, state: PersistedState) -> Path:
        """Atomically write the record for an identity and return its path."""

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.record_path(identity)
        content = json.dumps(
            state_to_payload(state), ensure_ascii=False, indent=2, sort_keys=True
        )

        handle = tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=self.root,
            prefix=f".{identity.key[:12]}.",
            suffix=".tmp",
            delete=False,
        )
        temp_path = Path(handle.name)
        try:
            with handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        if self._logger is not None:
            self._logger.info("persistence", "save", key=identity.key[:12])
        return path

    def delete(self, identity: AudiobookIdentity) -> bool:
        """Delete the record for an identity and return whether one existed."""

        path = self.record_path(identity)
        if not path.exists():
            return False
        path.unlink()
        return True


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_non_negative_int(payload: Mapping[str, Any], key: str) -> int:
    value = payload.get(key)
    if not _is_int(value) or value < 0:
        raise PersistedStateCorrupt(f"Record field `{key}` must be a non-negative integer.")
    return value


def _require_number(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PersistedStateCorrupt(f"Record field `{key}` must be a number.")
    return float(value)


def _require_positive_number(payload: Mapping[str, Any], key: str) -> float:
    value = _require_number(payload, key)
    if value <= 0:
        raise PersistedStateCorrupt(f"Record field `{key}` must be a positive number.")
    return value


def _require_bool(payload: Mapping[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if not isinstance(value, bool):
        raise PersistedStateCorrupt(f"Record field `{key}` must be a boolean.")
    return value


def _parse_bookmarks(raw: object) -> tuple[Bookmark, ...]:
    if not isinstance(raw, list):
        raise PersistedStateCorrupt("Record field `bookmarks` must be a list.")

    bookmarks: list[Bookmark] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise PersistedStateCorrupt("Record bookmark entries must be objects.")
        unit_index = _require_non_negative_int(item, "unit_index")
        offset_ms = _require_non_negative_int(item, "offset_ms")
        created_at = normalize_optional_string(item.get("created_at"))
        if created_at is None:
            raise PersistedStateCorrupt("Record bookmark entries require `created_at`.")
        bookmark_id = normalize_optional_string(item.get("id")) or Bookmark.derive_id(
            unit_index, offset_ms, created_at
        )
        bookmarks.append(
            Bookmark(
                bookmark_id=bookmark_id,
                unit_index=unit_index,
                offset_ms=offset_ms,
                label=normalize_optional_string(item.get("label")),
                created_at=created_at,
            )
        )
    return tuple(bookmarks)


def _parse_descriptions(raw: object) -> dict[int, str]:
    if not isinstance(raw, Mapping):
        raise PersistedStateCorrupt("Record field `descriptions` must be an object.")

    descriptions: dict[int, str] = {}
    for key, value in raw.items():
        key_text = str(key).strip()
        text = normalize_optional_string(value)
        if not key_text.isdigit():
            raise PersistedStateCorrupt("Record description keys must be unit indices.")
        if text is not None:
            descriptions[int(key_text)] = text
    return descriptions


def _parse_unit_positions(raw: object) -> dict[int, int]:
    if not isinstance(raw, Mapping):
        raise PersistedStateCorrupt("Record field `unit_positions` must be an object.")

    positions: dict[int, int] = {}
    for key, value in raw.items():
        key_text = str(key).strip()
        if not key_text.isdigit() or not _is_int(value) or value < 0:
            raise PersistedStateCorrupt(
                "Record unit positions must map unit indices to non-negative offsets."
            )
        positions[int(key_text)] = value
    return positions
