"""Listening-session orchestration.

Responsibilities:
- Wire catalog, persisted record, state manager, bookmarks, and controller
  together for one audiobook.
- Dispatch UI commands and turn every recoverable error into a status message.
- Produce `SessionView` snapshots for rendering.
- Snapshot state into the keyed store on an autosave interval and on close.

Key types:
- `CommandKind` / `UserCommand`: UI commands accepted by `ListeningSession.handle`.
- `ListeningSession`: session facade used by the CLI event loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import time
from typing import Callable

from ..catalog.resolver import Catalog
from ..config import EarmarkConfig
from ..errors import EarmarkError, InvalidPosition, PersistedStateCorrupt
from ..io.storage import FORMAT_VERSION, StateStore
from ..models.datatypes import (
    AudiobookIdentity,
    Bookmark,
    PersistedState,
    PlaybackState,
    SessionView,
)
from ..parsing import format_position, normalize_optional_string
from ..telemetry.logger import SessionLogger
from .antispoiler import visible_titles
from .bookmarks import BookmarkStore, describe_bookmark
from .controller import PlaybackController, PlaybackEngine
from .messages import StatusMessages
from .state import SessionStateManager


class CommandKind(str, Enum):
    """UI commands understood by `ListeningSession.handle`."""

    TOGGLE_PLAY = "toggle-play"
    SEEK_RELATIVE = "seek-relative"
    SEEK_ABSOLUTE = "seek-absolute"
    SEEK_CHAPTER = "seek-chapter"
    NEXT_CHAPTER = "next-chapter"
    PREVIOUS_CHAPTER = "previous-chapter"
    RESET_CHAPTER = "reset-chapter"
    FINISH_CHAPTER = "finish-chapter"
    SPEED_UP = "speed-up"
    SPEED_DOWN = "speed-down"
    SET_SPEED = "set-speed"
    VOLUME_UP = "volume-up"
    VOLUME_DOWN = "volume-down"
    ADD_BOOKMARK = "add-bookmark"
    MARK = "mark"
    BOOKMARK_AT_MARK = "bookmark-at-mark"
    JUMP_BOOKMARK = "jump-bookmark"
    REMOVE_BOOKMARK = "remove-bookmark"
    RENAME_BOOKMARK = "rename-bookmark"
    RESTORE_BEFORE_JUMP = "restore-before-jump"
    DESCRIBE_CHAPTER = "describe-chapter"
    TOGGLE_ANTISPOILER = "toggle-antispoiler"
    QUIT = "quit"


@dataclass(frozen=True, slots=True)
class UserCommand:
    """One parsed UI command.

    Attributes:
        kind: Command to run.
        argument: Milliseconds for seeks, a 0-based unit index for
            `SEEK_CHAPTER`, a rate for `SET_SPEED`, a bookmark id, label, or
            description text for the bookmark and description commands, or
            `"<id> <label>"` for `RENAME_BOOKMARK`, otherwise `None`.
    """

    kind: CommandKind
    argument: int | float | str | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def read_record(
    store: StateStore,
    identity: AudiobookIdentity,
    messages: StatusMessages,
    logger: SessionLogger | None = None,
) -> PersistedState | None:
    """Load the saved record, replacing a corrupt one with `None` plus a message."""

    try:
        return store.load(identity)
    except PersistedStateCorrupt as exc:
        messages.push(f"Saved session ignored: {exc.detail}")
        if logger is not None:
            logger.warning("persistence", "corrupt-record", key=identity.key[:12])
        return None


def fresh_record(identity: AudiobookIdentity, antispoiler: bool = False) -> PersistedState:
    """Return the record of a session that has never been played."""

    default = PlaybackState()
    return PersistedState(
        format_version=FORMAT_VERSION,
        source_path=str(identity.source_path),
        unit_index=default.unit_index,
        offset_ms=default.offset_ms,
        speed=default.speed,
        volume=default.volume,
        antispoiler=antispoiler,
    )


class ListeningSession:
    """One audiobook's live session: state, bookmarks, engine, and autosave."""

    def __init__(
        self,
        catalog: Catalog,
        store: StateStore,
        engine: PlaybackEngine,
        config: EarmarkConfig | None = None,
        *,
        antispoiler: bool | None = None,
        logger: SessionLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Restore the saved session for `catalog` and prepare the engine bridge.

        Args:
            catalog: Resolved units of the audiobook.
            store: Keyed store holding saved session records.
            engine: Playback engine driven by the session controller.
            config: Runtime settings; defaults apply when omitted.
            antispoiler: Explicit antispoiler override. When `None`, the saved
                record decides, then the config default.
            logger: Optional structured event logger.
            clock: Monotonic clock used for the autosave interval.
            now: Wall clock used for record timestamps.
        """

        self._catalog = catalog
        self._store = store
        self._config = config or EarmarkConfig()
        self._logger = logger
        self._clock = clock
        self._now = now
        self._messages = StatusMessages()
        for reason in catalog.fallback_reasons:
            self._messages.push(f"Chapters unavailable, playing whole file: {reason}")

        record = read_record(store, catalog.identity, self._messages, logger)
        self._manager = SessionStateManager(
            catalog.units,
            speed_bounds=self._config.speed_bounds,
            messages=self._messages,
            logger=logger,
        )
        self._manager.load(catalog.identity, record)
        self._bookmarks = BookmarkStore(self._restorable_bookmarks(record), clock=now)
        self._descriptions: dict[int, str] = {
            index: text
            for index, text in (record.descriptions.items() if record is not None else ())
            if 0 <= index < len(catalog.units)
        }
        if antispoiler is not None:
            self._antispoiler = antispoiler
        elif record is not None:
            self._antispoiler = record.antispoiler
        else:
            self._antispoiler = self._config.antispoiler
        self._controller = PlaybackController(self._manager, engine, logger=logger)
        self._last_save = clock()
        self._closed = False

        if logger is not None:
            logger.info(
                "session",
                "start",
                key=catalog.identity.key[:12],
                kind=catalog.kind,
                restored=record is not None,
                units=len(catalog.units),
            )

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def identity(self) -> AudiobookIdentity:
        return self._catalog.identity

    @property
    def manager(self) -> SessionStateManager:
        return self._manager

    @property
    def controller(self) -> PlaybackController:
        return self._controller

    @property
    def bookmarks(self) -> BookmarkStore:
        return self._bookmarks

    @property
    def messages(self) -> StatusMessages:
        return self._messages

    @property
    def antispoiler(self) -> bool:
        return self._antispoiler

    @property
    def descriptions(self) -> dict[int, str]:
        return dict(self._descriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    def handle(self, command: UserCommand) -> bool:
        """Run one UI command.

        Returns:
            `False` once the session has been closed by `QUIT`, else `True`.
        """

        if self._closed:
            return False
        try:
            return self._dispatch(command)
        except EarmarkError as exc:
            self._messages.push(exc.detail)
            if self._logger is not None:
                self._logger.warning("session", "command-rejected", command=command.kind.value)
            return True

    def tick(self) -> None:
        """Apply pending engine events and autosave when the interval elapsed."""

        if self._closed:
            return
        self._controller.poll()
        if self._clock() - self._last_save >= self._config.autosave_seconds:
            self.save()

    def view(self) -> SessionView:
        """Return a render snapshot and drain pending status messages."""

        state = self._manager.state
        unit = self._manager.current_unit
        return SessionView(
            unit_index=state.unit_index,
            unit_title=unit.title if unit is not None else "",
            unit_count=len(self._catalog.units),
            offset_ms=state.offset_ms,
            duration_ms=unit.duration_ms if unit is not None else None,
            speed=state.speed,
            volume=state.volume,
            status=state.status,
            antispoiler=self._antispoiler,
            chapters=visible_titles(self._catalog.units, state.unit_index, self._antispoiler),
            bookmarks=self._bookmarks.list(),
            messages=self._messages.drain(),
        )

    def snapshot(self) -> PersistedState:
        """Return the persisted form of the current session."""

        state = self._manager.state
        return PersistedState(
            format_version=FORMAT_VERSION,
            source_path=str(self._catalog.identity.source_path),
            unit_index=state.unit_index,
            offset_ms=state.offset_ms,
            speed=state.speed,
            volume=state.volume,
            antispoiler=self._antispoiler,
            bookmarks=self._bookmarks.snapshot(),
            descriptions=dict(self._descriptions),
            unit_positions=self._manager.unit_positions,
            saved_at=self._now().isoformat(timespec="seconds"),
        )

    def save(self) -> bool:
        """Write a snapshot to the store; a failed write becomes a status message."""

        self._last_save = self._clock()
        try:
            self._store.save(self._catalog.identity, self.snapshot())
        except OSError as exc:
            self._messages.push(f"Could not save the session: {exc}")
            if self._logger is not None:
                self._logger.failure("persistence", exc)
            return False
        return True

    def close(self) -> None:
        """Flush the engine position, stop the engine, and save once."""

        if self._closed:
            return
        self._controller.shutdown()
        self.save()
        self._closed = True
        if self._logger is not None:
            self._logger.info("session", "stop", key=self._catalog.identity.key[:12])

    def _dispatch(self, command: UserCommand) -> bool:
        controller = self._controller
        match command.kind:
            case CommandKind.TOGGLE_PLAY:
                controller.toggle_play()
            case CommandKind.SEEK_RELATIVE:
                delta = command.argument
                if not isinstance(delta, int):
                    delta = self._config.seek_step_seconds * 1000
                controller.seek_relative(delta)
            case CommandKind.SEEK_ABSOLUTE:
                controller.seek_within_unit(self._require_int(command))
            case CommandKind.SEEK_CHAPTER:
                controller.seek_to_unit(self._require_unit_index(self._require_int(command)))
            case CommandKind.NEXT_CHAPTER:
                controller.next_unit()
            case CommandKind.PREVIOUS_CHAPTER:
                controller.previous_unit()
            case CommandKind.RESET_CHAPTER:
                controller.reset_unit()
                self._messages.push("Back to the start of the chapter.")
            case CommandKind.FINISH_CHAPTER:
                if controller.finish_unit():
                    # the next chapter's index is the finished chapter's number
                    self._messages.push(f"Finished chapter {self._manager.state.unit_index}.")
            case CommandKind.SPEED_UP:
                speed = controller.adjust_speed(self._config.speed_step)
                self._messages.push(f"Speed {speed:g}x.")
            case CommandKind.SPEED_DOWN:
                speed = controller.adjust_speed(-self._config.speed_step)
                self._messages.push(f"Speed {speed:g}x.")
            case CommandKind.SET_SPEED:
                speed = controller.set_speed(self._require_speed(command))
                self._messages.push(f"Speed {speed:g}x.")
            case CommandKind.VOLUME_UP:
                volume = controller.adjust_volume(self._config.volume_step)
                self._messages.push(f"Volume {round(volume * 100)}%.")
            case CommandKind.VOLUME_DOWN:
                volume = controller.adjust_volume(-self._config.volume_step)
                self._messages.push(f"Volume {round(volume * 100)}%.")
            case CommandKind.ADD_BOOKMARK:
                controller.flush_position()
                self._add_bookmark(self._manager.state, self._label(command))
            case CommandKind.MARK:
                controller.flush_position()
                _, offset_ms = self._manager.mark()
                self._messages.push(f"Marked position {format_position(offset_ms)}.")
            case CommandKind.BOOKMARK_AT_MARK:
                marked = self._manager.marked
                if marked is None:
                    self._messages.push("No position is marked.")
                else:
                    unit_index, offset_ms = marked
                    self._add_bookmark(
                        PlaybackState(unit_index=unit_index, offset_ms=offset_ms),
                        self._label(command),
                    )
                    self._manager.clear_mark()
            case CommandKind.JUMP_BOOKMARK:
                unit_index, offset_ms = self._bookmarks.jump_target(self._require_text(command))
                controller.jump_to(unit_index, offset_ms)
            case CommandKind.REMOVE_BOOKMARK:
                if self._bookmarks.remove(self._require_text(command)):
                    self._messages.push("Removed the bookmark.")
                else:
                    self._messages.push("No such bookmark; nothing removed.")
            case CommandKind.RENAME_BOOKMARK:
                self._rename_bookmark(self._require_text(command))
            case CommandKind.RESTORE_BEFORE_JUMP:
                controller.restore_before_jump()
            case CommandKind.DESCRIBE_CHAPTER:
                self._describe_current(self._label(command))
            case CommandKind.TOGGLE_ANTISPOILER:
                self._antispoiler = not self._antispoiler
                self._messages.push(
                    "Antispoiler mode on." if self._antispoiler else "Antispoiler mode off."
                )
            case CommandKind.QUIT:
                self.close()
                return False
        return True

    def _add_bookmark(self, position: PlaybackState, label: str | None) -> None:
        unit = self._catalog.units[position.unit_index] if self._catalog.units else None
        if unit is None:
            raise InvalidPosition("There is nothing to bookmark: the catalog is empty.")
        bookmark = self._bookmarks.add(position, label=label, duration_ms=unit.duration_ms)
        self._messages.push(f"Added a bookmark {describe_bookmark(bookmark)}.")

    def _rename_bookmark(self, argument: str) -> None:
        bookmark_id, _, label = argument.partition(" ")
        existing = self._bookmarks.get(bookmark_id)
        renamed = self._bookmarks.rename(bookmark_id, label)
        old_label = existing.label if existing is not None else None
        self._messages.push(
            f'Changed name from "{old_label or "(unnamed)"}" to "{renamed.label or "(unnamed)"}".'
        )

    def _describe_current(self, text: str | None) -> None:
        unit_index = self._manager.state.unit_index
        if text is None:
            self._descriptions.pop(unit_index, None)
            self._messages.push("Removed the chapter description.")
        else:
            self._descriptions[unit_index] = text
            self._messages.push("Saved the chapter description.")

    def _restorable_bookmarks(self, record: PersistedState | None) -> list[Bookmark]:
        if record is None:
            return []
        unit_count = len(self._catalog.units)
        kept = [item for item in record.bookmarks if item.unit_index < unit_count]
        dropped = len(record.bookmarks) - len(kept)
        if dropped:
            self._messages.push(f"Dropped {dropped} bookmark(s) outside the current catalog.")
        return kept

    def _require_unit_index(self, unit_index: int) -> int:
        if not 0 <= unit_index < len(self._catalog.units):
            raise InvalidPosition(f"Chapter {unit_index + 1} does not exist.")
        return unit_index

    @staticmethod
    def _require_int(command: UserCommand) -> int:
        if not isinstance(command.argument, int):
            raise InvalidPosition(f"Command `{command.kind.value}` needs a position.")
        return command.argument

    @staticmethod
    def _require_speed(command: UserCommand) -> float:
        speed = command.argument
        if isinstance(speed, bool) or not isinstance(speed, (int, float)) or speed <= 0:
            raise InvalidPosition("Couldn't set the speed; use a number greater than 0.")
        return float(speed)

    @staticmethod
    def _require_text(command: UserCommand) -> str:
        text = normalize_optional_string(command.argument)
        if text is None:
            raise InvalidPosition(f"Command `{command.kind.value}` needs a bookmark id.")
        return text

    @staticmethod
    def _label(command: UserCommand) -> str | None:
        return normalize_optional_string(command.argument)
