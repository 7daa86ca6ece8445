"""Shared pytest fixtures for the full earmark test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping

import pytest

from earmark.catalog import Catalog, CatalogResolver
from earmark.errors import EngineError, MetadataUnreadable
from earmark.io.storage import StateStore
from earmark.models.datatypes import ChapterDescriptor, SourceMetadata
from earmark.session.controller import EngineEvent, PositionTick


class FakeEngine:
    """In-memory playback engine recording every command it receives."""

    def __init__(self) -> None:
        self.commands: list[tuple[object, ...]] = []
        self.events: list[EngineEvent] = []
        self.position: int | None = None
        self.last_sequence = 0
        self.fail_on: set[str] = set()

    @property
    def names(self) -> list[str]:
        return [str(command[0]) for command in self.commands]

    def _record(self, name: str, *args: object) -> None:
        if name in self.fail_on:
            raise EngineError(f"{name} rejected by device")
        self.commands.append((name, *args))

    def load(self, path: Path, offset_ms: int, rate: float, volume: float, sequence: int) -> None:
        self._record("load", path, offset_ms, rate, volume, sequence)
        self.position = offset_ms
        self.last_sequence = sequence

    def play(self, sequence: int) -> None:
        self._record("play", sequence)
        self.last_sequence = sequence

    def pause(self, sequence: int) -> None:
        self._record("pause", sequence)
        self.last_sequence = sequence

    def seek(self, offset_ms: int, sequence: int) -> None:
        self._record("seek", offset_ms, sequence)
        self.position = offset_ms
        self.last_sequence = sequence

    def set_rate(self, rate: float, sequence: int) -> None:
        self._record("set_rate", rate, sequence)
        self.last_sequence = sequence

    def set_volume(self, volume: float, sequence: int) -> None:
        self._record("set_volume", volume, sequence)
        self.last_sequence = sequence

    def stop(self) -> None:
        self._record("stop")
        self.position = None

    def position_ms(self) -> int | None:
        return self.position

    def poll_events(self) -> list[EngineEvent]:
        pending = self.events
        self.events = []
        return pending

    def advance_to(self, offset_ms: int) -> None:
        """Queue a tick for the latest applied command, as a playing engine would."""

        self.position = offset_ms
        self.events.append(PositionTick(self.last_sequence, offset_ms))


class FakeReader:
    """Metadata reader answering from a filename-keyed table."""

    def __init__(self, responses: Mapping[str, SourceMetadata | Exception]) -> None:
        self._responses = dict(responses)
        self.calls: list[Path] = []

    def read(self, path: Path) -> SourceMetadata:
        self.calls.append(path)
        response = self._responses.get(path.name)
        if response is None:
            raise MetadataUnreadable(f"no metadata for `{path.name}`")
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Provide a fresh recording playback engine."""

    return FakeEngine()


@pytest.fixture
def fake_reader() -> Callable[[Mapping[str, SourceMetadata | Exception]], FakeReader]:
    """Provide a factory for filename-keyed fake metadata readers."""

    return FakeReader


@pytest.fixture
def state_store(tmp_path: Path) -> StateStore:
    """Provide a record store rooted in a temporary state directory."""

    return StateStore(tmp_path / "state")


@pytest.fixture
def single_file_catalog(tmp_path: Path) -> Catalog:
    """Resolve a plain 60-second audio file without chapters."""

    source = tmp_path / "lecture.mp3"
    source.write_bytes(b"")
    reader = FakeReader(
        {"lecture.mp3": SourceMetadata(path=source, title="Lecture", duration_ms=60_000)}
    )
    return CatalogResolver(reader).resolve_path(source)


@pytest.fixture
def three_chapter_catalog(tmp_path: Path) -> Catalog:
    """Resolve a container with chapters of 100 s, 200 s, and 150 s."""

    source = tmp_path / "novel.m4b"
    source.write_bytes(b"")
    metadata = SourceMetadata(
        path=source,
        album="The Novel",
        duration_ms=450_000,
        chapters=(
            ChapterDescriptor(title="Arrival", start_ms=0, duration_ms=100_000),
            ChapterDescriptor(title="The Butler Did It", start_ms=100_000, duration_ms=200_000),
            ChapterDescriptor(title="Epilogue", start_ms=300_000, duration_ms=150_000),
        ),
    )
    return CatalogResolver(FakeReader({"novel.m4b": metadata})).resolve_path(source)
