"""Catalog resolution from filesystem paths to ordered playable units.

Responsibilities:
- Turn raw metadata for a file into `PlayableUnit` records.
- Expand chapterized containers into one unit per chapter.
- Expand directories into one unit per audio file (containers in place).
- Fall back to a single whole-file unit when introspection fails.

Key types:
- `MetadataReader`: protocol for the external tag/chapter reader.
- `Catalog`: resolved units plus resolution diagnostics.
- `CatalogResolver`: resolution entry points.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..errors import MetadataUnreadable
from ..models.datatypes import (
    AudiobookIdentity,
    ChapterDescriptor,
    ContainerRange,
    PlayableUnit,
    SourceMetadata,
    UnitSource,
    WholeFile,
)
from ..parsing import normalize_optional_string
from ..telemetry.logger import SessionLogger

SUPPORTED_EXTENSIONS = frozenset({".flac", ".m4a", ".m4b", ".mp3", ".mp4", ".ogg", ".opus", ".wav"})


class MetadataReader(Protocol):
    """Protocol for the external reader that introspects audio files."""

    def read(self, path: Path) -> SourceMetadata:
        """Return tags and chapters, raising `MetadataUnreadable` on failure."""


@dataclass(frozen=True, slots=True)
class Catalog:
    """Resolved catalog for one audiobook source.

    Attributes:
        identity: Persistence key for the source.
        units: Ordered playable units with contiguous indices.
        kind: `file`, `container`, or `directory`.
        title: Book title from tags, else the source name.
        fallback_reasons: Per-file reasons a whole-file fallback was used.
    """

    identity: AudiobookIdentity
    units: tuple[PlayableUnit, ...]
    kind: str
    title: str
    fallback_reasons: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class _PendingUnit:
    title: str | None
    duration_ms: int | None
    source: UnitSource


class CatalogResolver:
    """Resolve sources into ordered `PlayableUnit` sequences."""

    def __init__(self, reader: MetadataReader, logger: SessionLogger | None = None) -> None:
        self._reader = reader
        self._logger = logger

    def resolve(self, path: Path, metadata: SourceMetadata | None) -> tuple[PlayableUnit, ...]:
        """Build units for one file from already-read metadata.

        Args:
            path: Audio file path.
            metadata: Reader output, or `None` when the file could not be read.

        Returns:
            One whole-file unit when there are no chapters, else one unit per
            chapter ordered by start offset.
        """

        return self._finalize(self._pending_units(path, metadata))

    def resolve_path(self, path: Path) -> Catalog:
        """Resolve a file, container, or directory path into a `Catalog`.

        Raises:
            MetadataUnreadable: If the path does not exist, or is a directory
                without any supported audio files.
        """

        identity = AudiobookIdentity.from_path(path)
        source = identity.source_path
        if not source.exists():
            raise MetadataUnreadable(
                f"Source not found: `{path}`.",
                hint="Pass an existing audio file, container, or directory.",
            )

        if source.is_dir():
            return self._resolve_directory(identity)

        metadata, reason = self._read_with_fallback(source)
        units = self.resolve(source, metadata)
        kind = "container" if metadata is not None and metadata.chapters else "file"
        return Catalog(
            identity=identity,
            units=units,
            kind=kind,
            title=self._book_title(source, [metadata]),
            fallback_reasons=(reason,) if reason else (),
        )

    def _resolve_directory(self, identity: AudiobookIdentity) -> Catalog:
        files = sorted(
            entry
            for entry in identity.source_path.iterdir()
            if entry.is_file() and entry.suffix.lower() in SUPPORTED_EXTENSIONS
        )
        if not files:
            raise MetadataUnreadable(
                f"Directory `{identity.source_path}` has no files with supported extensions.",
                hint="Supported: " + ", ".join(sorted(SUPPORTED_EXTENSIONS)) + ".",
            )

        entries: list[tuple[Path, SourceMetadata | None]] = []
        reasons: list[str] = []
        for file_path in files:
            metadata, reason = self._read_with_fallback(file_path)
            entries.append((file_path, metadata))
            if reason:
                reasons.append(reason)

        entries.sort(key=self._directory_sort_key)
        pending: list[_PendingUnit] = []
        for file_path, metadata in entries:
            pending.extend(self._pending_units(file_path, metadata))

        return Catalog(
            identity=identity,
            units=self._finalize(pending),
            kind="directory",
            title=self._book_title(identity.source_path, [item[1] for item in entries]),
            fallback_reasons=tuple(reasons),
        )

    def _read_with_fallback(self, path: Path) -> tuple[SourceMetadata | None, str]:
        """Read metadata, converting `MetadataUnreadable` into a fallback reason."""

        try:
            return self._reader.read(path), ""
        except MetadataUnreadable as exc:
            if self._logger is not None:
                self._logger.warning("catalog", "metadata-fallback", file=path.name)
            return None, f"{path.name}: {exc.detail}"

    @staticmethod
    def _directory_sort_key(entry: tuple[Path, SourceMetadata | None]) -> tuple[object, ...]:
        """Order by track number, then title, then filename."""

        file_path, metadata = entry
        track = metadata.track_number if metadata is not None else None
        if track is not None:
            return (0, track, "", file_path.name)
        title = metadata.title if metadata is not None else None
        return (1, 0, (title or file_path.name).casefold(), file_path.name)

    def _pending_units(self, path: Path, metadata: SourceMetadata | None) -> list[_PendingUnit]:
        if metadata is None or not metadata.chapters:
            title = None if metadata is None else normalize_optional_string(metadata.title)
            return [
                _PendingUnit(
                    title=title or path.stem,
                    duration_ms=None if metadata is None else metadata.duration_ms,
                    source=WholeFile(path=path),
                )
            ]

        chapters = self._ordered_chapters(metadata.chapters)
        pending: list[_PendingUnit] = []
        for position, chapter in enumerate(chapters):
            duration_ms = chapter.duration_ms
            if duration_ms is None:
                if position + 1 < len(chapters):
                    duration_ms = chapters[position + 1].start_ms - chapter.start_ms
                elif metadata.duration_ms is not None:
                    duration_ms = max(0, metadata.duration_ms - chapter.start_ms)
            end_ms = chapter.start_ms + duration_ms if duration_ms is not None else None
            pending.append(
                _PendingUnit(
                    title=normalize_optional_string(chapter.title),
                    duration_ms=duration_ms,
                    source=ContainerRange(path=path, start_ms=chapter.start_ms, end_ms=end_ms),
                )
            )
        return pending

    @staticmethod
    def _ordered_chapters(
        chapters: tuple[ChapterDescriptor, ...],
    ) -> list[ChapterDescriptor]:
        """Drop duplicate `(title, start)` reports and stable-sort by start offset."""

        seen: set[tuple[str | None, int]] = set()
        unique: list[ChapterDescriptor] = []
        for chapter in chapters:
            marker = (chapter.title, chapter.start_ms)
            if marker in seen:
                continue
            seen.add(marker)
            unique.append(chapter)
        # sorted() is stable, so equal starts keep report order
        return sorted(unique, key=lambda chapter: chapter.start_ms)

    @staticmethod
    def _finalize(pending: list[_PendingUnit]) -> tuple[PlayableUnit, ...]:
        return tuple(
            PlayableUnit(
                index=index,
                title=item.title or f"Chapter {index + 1}",
                duration_ms=item.duration_ms,
                source=item.source,
            )
            for index, item in enumerate(pending)
        )

    @staticmethod
    def _book_title(path: Path, metadata_items: list[SourceMetadata | None]) -> str:
        for metadata in metadata_items:
            if metadata is None:
                continue
            title = normalize_optional_string(metadata.album) or (
                normalize_optional_string(metadata.title) if metadata.chapters else None
            )
            if title is not None:
                return title
        return path.stem if path.is_file() else path.name
