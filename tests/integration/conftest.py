"""Integration-test fixtures replacing the ffprobe and ffplay tools."""

from __future__ import annotations

from pathlib import Path

import pytest

from earmark.errors import MetadataUnreadable
from earmark.models.datatypes import ChapterDescriptor, SourceMetadata


def _novel_metadata(path: Path) -> SourceMetadata:
    return SourceMetadata(
        path=path,
        album="The Novel",
        duration_ms=450_000,
        chapters=(
            ChapterDescriptor(title="Arrival", start_ms=0, duration_ms=100_000),
            ChapterDescriptor(title="The Butler Did It", start_ms=100_000, duration_ms=200_000),
            ChapterDescriptor(title="Epilogue", start_ms=300_000, duration_ms=150_000),
        ),
    )


@pytest.fixture
def novel_path(tmp_path: Path) -> Path:
    """Create an empty chapterized container the patched reader knows about."""

    path = tmp_path / "novel.m4b"
    path.write_bytes(b"")
    return path


@pytest.fixture(autouse=True)
def _mock_external_tools(monkeypatch: pytest.MonkeyPatch, fake_engine) -> None:
    """Mock ffprobe and ffplay so integration tests need no media binaries."""

    def _mock_read(self, path: Path) -> SourceMetadata:
        """Return chapter metadata for `novel.m4b`; other files have none."""

        _ = self
        if path.name == "novel.m4b":
            return _novel_metadata(path)
        raise MetadataUnreadable(f"ffprobe could not read `{path.name}`.")

    monkeypatch.setattr("earmark.cli.FfprobeMetadataReader.read", _mock_read)
    monkeypatch.setattr("earmark.cli.FfplayEngine", lambda *_args, **_kwargs: fake_engine)
    for key in ("EARMARK_STATE_DIR", "EARMARK_ANTISPOILER", "XDG_STATE_HOME"):
        monkeypatch.delenv(key, raising=False)
