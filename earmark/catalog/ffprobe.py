"""`ffprobe`-backed metadata reader.

Responsibilities:
- Read tag metadata, total duration, and chapter boundaries for one file.
- Map every introspection failure to `MetadataUnreadable`.
"""

from __future__ import annotations

import json
from pathlib import Path
import subprocess
from typing import Any, Mapping

from ..errors import MetadataUnreadable
from ..models.datatypes import ChapterDescriptor, SourceMetadata
from ..parsing import normalize_optional_string
from ..runtime_tools import resolve_executable


def _seconds_to_ms(value: object) -> int | None:
    """Convert an ffprobe decimal-seconds string into milliseconds."""

    text = normalize_optional_string(value)
    if text is None:
        return None
    try:
        seconds = float(text)
    except ValueError:
        return None
    if seconds < 0:
        return None
    return int(round(seconds * 1000))


def _lowered_tags(raw: object) -> dict[str, str]:
    """Return tag keys lower-cased; Vorbis-style containers report `TITLE`."""

    if not isinstance(raw, Mapping):
        return {}
    tags: dict[str, str] = {}
    for key, value in raw.items():
        normalized = normalize_optional_string(value)
        if normalized is not None:
            tags[str(key).lower()] = normalized
    return tags


def _parse_track_number(value: str | None) -> int | None:
    """Parse `3` or `3/12` track tags."""

    if value is None:
        return None
    head = value.split("/", 1)[0].strip()
    return int(head) if head.isdigit() else None


class FfprobeMetadataReader:
    """Read `SourceMetadata` by running `ffprobe` with JSON output."""

    def __init__(self, executable: str = "ffprobe", timeout_seconds: float = 30.0) -> None:
        self._executable = executable
        self._timeout_seconds = timeout_seconds

    def read(self, path: Path) -> SourceMetadata:
        """Introspect one audio file.

        Raises:
            MetadataUnreadable: If ffprobe is missing, fails, or returns
                output that is not a JSON object.
        """

        command = [
            resolve_executable(self._executable),
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_chapters",
            str(path),
        ]
        try:
            completed = subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise MetadataUnreadable(
                f"Metadata tool `{self._executable}` is not available on PATH.",
                hint="Install ffmpeg (which provides ffprobe) or set `ffprobe_path`.",
            ) from exc
        except subprocess.CalledProcessError as exc:
            stderr = normalize_optional_string(exc.stderr) or "no stderr output"
            raise MetadataUnreadable(f"ffprobe failed for `{path.name}`: {stderr}") from exc
        except subprocess.TimeoutExpired as exc:
            raise MetadataUnreadable(f"ffprobe timed out reading `{path.name}`.") from exc

        try:
            payload = json.loads(completed.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise MetadataUnreadable(f"ffprobe returned invalid JSON for `{path.name}`.") from exc
        if not isinstance(payload, dict):
            raise MetadataUnreadable(f"ffprobe returned a non-object payload for `{path.name}`.")

        return self.metadata_from_payload(path, payload)

    @staticmethod
    def metadata_from_payload(path: Path, payload: Mapping[str, Any]) -> SourceMetadata:
        """Map an ffprobe JSON payload onto `SourceMetadata`."""

        format_section = payload.get("format")
        if not isinstance(format_section, Mapping):
            format_section = {}
        tags = _lowered_tags(format_section.get("tags"))

        chapters: list[ChapterDescriptor] = []
        raw_chapters = payload.get("chapters")
        for raw in raw_chapters if isinstance(raw_chapters, list) else []:
            if not isinstance(raw, Mapping):
                continue
            start_ms = _seconds_to_ms(raw.get("start_time"))
            if start_ms is None:
                continue
            end_ms = _seconds_to_ms(raw.get("end_time"))
            duration_ms = end_ms - start_ms if end_ms is not None and end_ms >= start_ms else None
            chapters.append(
                ChapterDescriptor(
                    title=_lowered_tags(raw.get("tags")).get("title"),
                    start_ms=start_ms,
                    duration_ms=duration_ms,
                )
            )

        return SourceMetadata(
            path=path,
            title=tags.get("title"),
            album=tags.get("album"),
            artist=tags.get("artist") or tags.get("album_artist"),
            track_number=_parse_track_number(tags.get("track")),
            duration_ms=_seconds_to_ms(format_section.get("duration")),
            chapters=tuple(chapters),
        )
