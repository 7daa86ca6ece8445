"""Session state machine owning the live playback position.

Responsibilities:
- Hold the single live `PlaybackState` and replace it only through the
  operations below; callers only ever receive immutable snapshots.
- Clamp every position, speed, and volume change into its valid range.
- Remember the last offset heard in every unit left behind, so changing
  chapters resumes each one where the listener stopped.
- Serialize mutations from the command path and the engine feedback path
  through one re-entrant lock.

States are `stopped`, `playing`, and `paused`. Seeking is not a rest state: a
seek replaces unit and offset in one locked transition and keeps the status.
"""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
import threading
from typing import Sequence

from ..models.datatypes import (
    AudiobookIdentity,
    PersistedState,
    PlayableUnit,
    PlaybackState,
    PlaybackStatus,
)
from ..telemetry.logger import SessionLogger
from .messages import StatusMessages

# Manual seeks past the end of a unit stop at the unit's end; they never roll
# into the next unit. Only engine ticks at or past the end advance.
OVERSHOOT_POLICY = "clamp"

DEFAULT_SPEED_BOUNDS = (0.5, 3.0)


class TickOutcome(str, Enum):
    """Result of applying one engine position tick."""

    IGNORED = "ignored"
    UPDATED = "updated"
    ADVANCED = "advanced"
    FINISHED = "finished"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class SessionStateManager:
    """Single-writer state machine for unit, offset, speed, volume, and status."""

    def __init__(
        self,
        units: Sequence[PlayableUnit],
        speed_bounds: tuple[float, float] = DEFAULT_SPEED_BOUNDS,
        messages: StatusMessages | None = None,
        logger: SessionLogger | None = None,
    ) -> None:
        self._units = tuple(units)
        self._speed_min, self._speed_max = speed_bounds
        self._messages = messages if messages is not None else StatusMessages()
        self._logger = logger
        self._lock = threading.RLock()
        self._state = PlaybackState()
        self._before_jump: tuple[int, int] | None = None
        self._mark: tuple[int, int] | None = None
        self._positions: dict[int, int] = {}

    @property
    def state(self) -> PlaybackState:
        """Current immutable snapshot."""

        with self._lock:
            return self._state

    @property
    def units(self) -> tuple[PlayableUnit, ...]:
        return self._units

    @property
    def messages(self) -> StatusMessages:
        return self._messages

    @property
    def current_unit(self) -> PlayableUnit | None:
        with self._lock:
            if not self._units:
                return None
            return self._units[self._state.unit_index]

    @property
    def marked(self) -> tuple[int, int] | None:
        """Position saved by `mark()`, if any."""

        return self._mark

    @property
    def unit_positions(self) -> dict[int, int]:
        """Remembered offsets of units other than the current one."""

        with self._lock:
            return dict(self._positions)

    def load(self, identity: AudiobookIdentity, record: PersistedState | None) -> PlaybackState:
        """Seed the live state from a persisted record for `identity`.

        The record is used only when its unit index is still inside the freshly
        resolved catalog; otherwise the state resets to unit 0, offset 0,
        speed 1.0, stopped. Restored sessions always start stopped.
        """

        with self._lock:
            default = PlaybackState()
            self._positions = {}
            if record is None or not 0 <= record.unit_index < len(self._units):
                if record is not None and self._logger is not None:
                    self._logger.warning(
                        "state",
                        "record-out-of-range",
                        key=identity.key[:12],
                        unit_index=record.unit_index,
                    )
                self._state = default
                return self._state

            self._state = PlaybackState(
                unit_index=record.unit_index,
                offset_ms=self._clamp_offset(record.unit_index, record.offset_ms),
                speed=_clamp(record.speed, self._speed_min, self._speed_max),
                volume=_clamp(record.volume, 0.0, 1.0),
                status=PlaybackStatus.STOPPED,
            )
            self._positions = {
                index: self._clamp_offset(index, offset)
                for index, offset in record.unit_positions.items()
                if 0 <= index < len(self._units) and index != record.unit_index
            }
            return self._state

    def play(self) -> bool:
        """Switch to playing; return whether the status changed."""

        with self._lock:
            if not self._require_units():
                return False
            if self._state.status is PlaybackStatus.PLAYING:
                return False
            self._state = replace(self._state, status=PlaybackStatus.PLAYING)
            return True

    def pause(self) -> bool:
        """Switch from playing to paused; return whether the status changed."""

        with self._lock:
            if not self._require_units():
                return False
            if self._state.status is not PlaybackStatus.PLAYING:
                return False
            self._state = replace(self._state, status=PlaybackStatus.PAUSED)
            return True

    def stop(self) -> None:
        with self._lock:
            self._state = replace(self._state, status=PlaybackStatus.STOPPED)

    def seek_to(self, unit_index: int, offset_ms: int) -> PlaybackState:
        """Move to a unit and offset, clamping both into range.

        This is the only position mutation entry point; user seeks, bookmark
        jumps, and engine ticks all pass through it.
        """

        with self._lock:
            if not self._units:
                return self._state
            index = int(_clamp(unit_index, 0, len(self._units) - 1))
            if index != self._state.unit_index:
                self._positions[self._state.unit_index] = self._state.offset_ms
                self._positions.pop(index, None)
            self._state = replace(
                self._state,
                unit_index=index,
                offset_ms=self._clamp_offset(index, offset_ms),
            )
            return self._state

    def seek_relative(self, delta_ms: int) -> PlaybackState:
        """Move within the current unit by `delta_ms`, clamped to its bounds."""

        with self._lock:
            return self.seek_to(self._state.unit_index, self._state.offset_ms + delta_ms)

    def jump_to(self, unit_index: int, offset_ms: int) -> PlaybackState:
        """Seek after remembering the current position for `restore_before_jump`."""

        with self._lock:
            self._before_jump = (self._state.unit_index, self._state.offset_ms)
            return self.seek_to(unit_index, offset_ms)

    def restore_before_jump(self) -> bool:
        """Return to the position saved by the last jump, swapping the two."""

        with self._lock:
            if self._before_jump is None:
                self._messages.push("There is no saved position before the jump.")
                return False
            unit_index, offset_ms = self._before_jump
            self.jump_to(unit_index, offset_ms)
            return True

    def apply_tick(self, unit_index: int, offset_ms: int) -> TickOutcome:
        """Apply an engine position report.

        Ticks for a unit other than the selected one are stale and ignored.
        A tick at or beyond a known duration while playing ends the unit.
        """

        with self._lock:
            if not self._units or unit_index != self._state.unit_index:
                return TickOutcome.IGNORED
            duration = self._units[unit_index].duration_ms
            if (
                duration is not None
                and offset_ms >= duration
                and self._state.status is PlaybackStatus.PLAYING
            ):
                return TickOutcome.ADVANCED if self.advance() else TickOutcome.FINISHED
            self.seek_to(unit_index, offset_ms)
            return TickOutcome.UPDATED

    def advance(self) -> bool:
        """Move to the next unit at offset 0, or stop after the last unit.

        Returns:
            `True` when a next unit was selected, `False` when the book ended.
        """

        with self._lock:
            if not self._require_units():
                return False
            next_index = self._state.unit_index + 1
            if next_index < len(self._units):
                self._positions[self._state.unit_index] = self._end_offset()
                self._positions.pop(next_index, None)
                self._state = replace(self._state, unit_index=next_index, offset_ms=0)
                return True

            self._state = replace(
                self._state, offset_ms=self._end_offset(), status=PlaybackStatus.STOPPED
            )
            self._messages.push("End of the book.")
            return False

    def next_unit(self) -> bool:
        with self._lock:
            if self._state.unit_index + 1 >= len(self._units):
                self._messages.push("Already at the last chapter.")
                return False
            self.open_unit(self._state.unit_index + 1)
            return True

    def previous_unit(self) -> bool:
        with self._lock:
            if self._state.unit_index < 1:
                self._messages.push("Already at the first chapter.")
                return False
            self.open_unit(self._state.unit_index - 1)
            return True

    def open_unit(self, unit_index: int) -> PlaybackState:
        """Jump to a unit at its remembered offset and drop the mark.

        A unit heard to its end, or never visited, opens at offset 0.
        Reopening the current unit restarts it.
        """

        with self._lock:
            if not self._units:
                return self._state
            index = int(_clamp(unit_index, 0, len(self._units) - 1))
            offset_ms = self._positions.get(index, 0)
            duration = self._units[index].duration_ms
            if duration is not None and offset_ms >= duration:
                offset_ms = 0
            self._mark = None
            return self.jump_to(index, offset_ms)

    def reset_unit(self) -> PlaybackState:
        """Return to the start of the current unit."""

        with self._lock:
            return self.seek_to(self._state.unit_index, 0)

    def finish_unit(self) -> bool:
        """Mark the current unit as heard to its end and open the next one.

        Returns:
            `True` when a next unit was opened, `False` on the last unit.
        """

        with self._lock:
            if self._state.unit_index + 1 >= len(self._units):
                self._messages.push("Already at the last chapter.")
                return False
            finished = self._state.unit_index
            end_offset = self._end_offset()
            self.open_unit(finished + 1)
            self._positions[finished] = end_offset
            return True

    def set_speed(self, multiplier: float) -> float:
        """Set the playback rate, clamped to the configured bounds."""

        with self._lock:
            speed = _clamp(round(float(multiplier), 2), self._speed_min, self._speed_max)
            self._state = replace(self._state, speed=speed)
            return speed

    def adjust_speed(self, delta: float) -> float:
        with self._lock:
            return self.set_speed(round(self._state.speed + delta, 2))

    def set_volume(self, volume: float) -> float:
        """Set the output volume, clamped to `[0.0, 1.0]`."""

        with self._lock:
            clamped = _clamp(round(float(volume), 2), 0.0, 1.0)
            self._state = replace(self._state, volume=clamped)
            return clamped

    def adjust_volume(self, delta: float) -> float:
        with self._lock:
            return self.set_volume(self._state.volume + delta)

    def mark(self) -> tuple[int, int]:
        """Remember the current position for a later bookmark."""

        with self._lock:
            self._mark = (self._state.unit_index, self._state.offset_ms)
            return self._mark

    def clear_mark(self) -> None:
        self._mark = None

    def _require_units(self) -> bool:
        if self._units:
            return True
        self._messages.push("Nothing to play: the catalog is empty.")
        return False

    def _end_offset(self) -> int:
        duration = self._units[self._state.unit_index].duration_ms
        return duration if duration is not None else self._state.offset_ms

    def _clamp_offset(self, unit_index: int, offset_ms: int) -> int:
        duration = self._units[unit_index].duration_ms
        upper = duration if duration is not None else max(0, int(offset_ms))
        return int(_clamp(int(offset_ms), 0, upper))
