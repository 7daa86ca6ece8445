"""Bridge between the session state machine and an external playback engine.

Responsibilities:
- Translate user commands into engine commands, matching on the unit source
  variant to address whole files or ranges inside a container.
- Stamp every outward command with a monotonically increasing sequence number
  and drop engine events that predate the latest position-affecting command.
- Coalesce position ticks so only the newest one of a poll batch is applied.
- Convert engine failures into status messages without touching the position.
- Flush the engine's last known position into the state before shutdown.

Engine offsets are absolute within the file; the controller converts them to
unit-relative offsets using the start of the unit whose range holds them,
which may be a later chapter of the loaded container.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence, Union

from ..errors import EngineError
from ..models.datatypes import ContainerRange, PlayableUnit, PlaybackStatus, WholeFile
from ..telemetry.logger import SessionLogger
from .messages import StatusMessages
from .state import SessionStateManager, TickOutcome


@dataclass(frozen=True, slots=True)
class PositionTick:
    """Engine report of the current absolute file position."""

    sequence: int
    offset_ms: int


@dataclass(frozen=True, slots=True)
class EndOfStream:
    """Engine report that the loaded file finished playing."""

    sequence: int


@dataclass(frozen=True, slots=True)
class EngineFailure:
    """Engine report of an asynchronous failure."""

    sequence: int
    reason: str


EngineEvent = Union[PositionTick, EndOfStream, EngineFailure]


class PlaybackEngine(Protocol):
    """Commands accepted by, and events produced by, an external audio engine.

    Every command may raise `EngineError`. Events carry the sequence number of
    the most recent command the engine had applied when it produced them.
    """

    def load(self, path: Path, offset_ms: int, rate: float, volume: float, sequence: int) -> None:
        """Open a file paused at an absolute offset."""

    def play(self, sequence: int) -> None:
        """Start or resume output."""

    def pause(self, sequence: int) -> None:
        """Pause output, keeping the position."""

    def seek(self, offset_ms: int, sequence: int) -> None:
        """Move to an absolute file offset."""

    def set_rate(self, rate: float, sequence: int) -> None:
        """Change the playback rate."""

    def set_volume(self, volume: float, sequence: int) -> None:
        """Change the output volume."""

    def stop(self) -> None:
        """Stop output and release the file."""

    def position_ms(self) -> int | None:
        """Return the current absolute file position, if known."""

    def poll_events(self) -> Sequence[EngineEvent]:
        """Return and clear events produced since the previous poll."""


def unit_window(unit: PlayableUnit) -> tuple[Path, int]:
    """Return the file and absolute start offset addressed by a unit."""

    match unit.source:
        case ContainerRange(path=path, start_ms=start_ms):
            return path, start_ms
        case WholeFile(path=path):
            return path, 0
    raise TypeError(f"Unsupported unit source: {unit.source!r}")


class PlaybackController:
    """Drive a `PlaybackEngine` from session commands and feed events back."""

    def __init__(
        self,
        manager: SessionStateManager,
        engine: PlaybackEngine,
        logger: SessionLogger | None = None,
    ) -> None:
        self._manager = manager
        self._engine = engine
        self._logger = logger
        self._sequence = 0
        self._position_sequence = 0
        self._loaded_unit: int | None = None

    @property
    def messages(self) -> StatusMessages:
        return self._manager.messages

    @property
    def sequence(self) -> int:
        """Sequence number of the most recent outward command."""

        return self._sequence

    @property
    def loaded_unit(self) -> int | None:
        return self._loaded_unit

    def toggle_play(self) -> None:
        if self._manager.state.status is PlaybackStatus.PLAYING:
            self.pause()
        else:
            self.play()

    def play(self) -> None:
        """Start playback at the state's position, loading the unit if needed."""

        if not self._manager.play():
            return
        if self._loaded_unit != self._manager.state.unit_index:
            if not self._load_current():
                return
        sequence = self._next_sequence()
        self._issue(lambda: self._engine.play(sequence))

    def pause(self) -> None:
        if not self._manager.pause():
            return
        sequence = self._next_sequence()
        if self._issue(lambda: self._engine.pause(sequence)):
            self.flush_position()

    def seek_relative(self, delta_ms: int) -> None:
        self.flush_position()
        self._manager.seek_relative(delta_ms)
        self._sync_position()

    def seek_within_unit(self, offset_ms: int) -> None:
        """Jump to an offset inside the current unit."""

        self.flush_position()
        state = self._manager.state
        self._manager.jump_to(state.unit_index, offset_ms)
        self._sync_position()

    def seek_to_unit(self, unit_index: int) -> None:
        """Open a unit at its remembered offset."""

        self.flush_position()
        self._manager.open_unit(unit_index)
        self._sync_position()

    def reset_unit(self) -> None:
        self.flush_position()
        self._manager.reset_unit()
        self._sync_position()

    def finish_unit(self) -> bool:
        """Pause, mark the current unit as heard, and open the next one paused."""

        self.pause()
        self.flush_position()
        if not self._manager.finish_unit():
            return False
        self._sync_position()
        return True

    def jump_to(self, unit_index: int, offset_ms: int) -> None:
        """Jump to an arbitrary unit and offset, e.g. a bookmark target."""

        self.flush_position()
        self._manager.jump_to(unit_index, offset_ms)
        self._sync_position()

    def next_unit(self) -> None:
        self.flush_position()
        if self._manager.next_unit():
            self._sync_position()

    def previous_unit(self) -> None:
        self.flush_position()
        if self._manager.previous_unit():
            self._sync_position()

    def restore_before_jump(self) -> None:
        self.flush_position()
        if self._manager.restore_before_jump():
            self._sync_position()

    def set_speed(self, multiplier: float) -> float:
        speed = self._manager.set_speed(multiplier)
        self._apply_rate(speed)
        return speed

    def adjust_speed(self, delta: float) -> float:
        speed = self._manager.adjust_speed(delta)
        self._apply_rate(speed)
        return speed

    def adjust_volume(self, delta: float) -> float:
        volume = self._manager.adjust_volume(delta)
        if self._loaded_unit is not None:
            sequence = self._next_sequence()
            self._issue(lambda: self._engine.set_volume(volume, sequence))
        return volume

    def poll(self) -> None:
        """Consume pending engine events and apply them to the session state."""

        pending_tick: PositionTick | None = None
        for event in self._engine.poll_events():
            if event.sequence < self._position_sequence:
                continue
            if isinstance(event, PositionTick):
                pending_tick = event
                continue
            if pending_tick is not None:
                self._apply_tick(pending_tick)
                pending_tick = None
            # the tick may have loaded the next file and moved the sequence on
            if event.sequence < self._position_sequence:
                continue
            if isinstance(event, EndOfStream):
                self._handle_end_of_stream()
            elif isinstance(event, EngineFailure):
                self._report_failure(event.reason)
        if pending_tick is not None and pending_tick.sequence >= self._position_sequence:
            self._apply_tick(pending_tick)

    def flush_position(self) -> None:
        """Copy the engine's current position into the state via `seek_to`."""

        if self._loaded_unit is None or self._loaded_unit != self._manager.state.unit_index:
            return
        try:
            absolute = self._engine.position_ms()
        except EngineError as exc:
            self._report_failure(exc.detail)
            return
        if absolute is None:
            return
        loaded = self._manager.units[self._loaded_unit]
        unit = self._unit_at(loaded, absolute)
        if unit.index != loaded.index:
            self._follow_into(loaded, unit)
        _, start_ms = unit_window(unit)
        self._manager.seek_to(unit.index, absolute - start_ms)

    def shutdown(self) -> None:
        """Flush the final position, then stop the engine."""

        self.poll()
        self.flush_position()
        try:
            self._engine.stop()
        except EngineError as exc:
            self._report_failure(exc.detail)
        self._loaded_unit = None
        self._manager.stop()
        if self._logger is not None:
            self._logger.info("controller", "shutdown", sequence=self._sequence)

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _issue(self, command: Callable[[], None]) -> bool:
        try:
            command()
        except EngineError as exc:
            self._report_failure(exc.detail)
            return False
        return True

    def _load_current(self) -> bool:
        unit = self._manager.current_unit
        if unit is None:
            return False
        state = self._manager.state
        path, start_ms = unit_window(unit)
        sequence = self._next_sequence()
        loaded = self._issue(
            lambda: self._engine.load(
                path, start_ms + state.offset_ms, state.speed, state.volume, sequence
            )
        )
        if loaded:
            self._position_sequence = sequence
            self._loaded_unit = unit.index
        return loaded

    def _sync_position(self) -> None:
        """Push the state's position to the engine after a state-side seek."""

        state = self._manager.state
        if self._loaded_unit is None and state.status is not PlaybackStatus.PLAYING:
            return
        if self._loaded_unit != state.unit_index:
            if self._load_current() and state.status is PlaybackStatus.PLAYING:
                sequence = self._next_sequence()
                self._issue(lambda: self._engine.play(sequence))
            return

        _, start_ms = unit_window(self._manager.units[state.unit_index])
        sequence = self._next_sequence()
        if self._issue(lambda: self._engine.seek(start_ms + state.offset_ms, sequence)):
            self._position_sequence = sequence

    def _apply_rate(self, speed: float) -> None:
        if self._loaded_unit is None:
            return
        sequence = self._next_sequence()
        self._issue(lambda: self._engine.set_rate(speed, sequence))

    def _apply_tick(self, tick: PositionTick) -> None:
        if self._loaded_unit is None:
            return
        loaded = self._manager.units[self._loaded_unit]
        unit = self._unit_at(loaded, tick.offset_ms)
        if unit.index != loaded.index:
            if self._manager.state.unit_index != loaded.index:
                return
            self._follow_into(loaded, unit)
        _, start_ms = unit_window(unit)
        outcome = self._manager.apply_tick(unit.index, tick.offset_ms - start_ms)
        if outcome is TickOutcome.ADVANCED:
            self._continue_with_next(unit)
        elif outcome is TickOutcome.FINISHED:
            self._halt_engine()

    def _unit_at(self, loaded: PlayableUnit, absolute_ms: int) -> PlayableUnit:
        """Return the unit of the loaded file that holds an absolute offset.

        Chapters sharing one container play back to back without a reload, so
        the engine may report offsets beyond the loaded chapter's range.
        """

        units = self._manager.units
        unit = loaded
        while unit.index + 1 < len(units):
            following = units[unit.index + 1]
            if not _contiguous(unit, following) or absolute_ms < unit_window(following)[1]:
                break
            unit = following
        return unit

    def _follow_into(self, loaded: PlayableUnit, unit: PlayableUnit) -> None:
        """Advance the state to a later unit the engine already plays in place."""

        for _ in range(unit.index - loaded.index):
            self._manager.advance()
        self._loaded_unit = unit.index
        self.messages.push(f"Starting chapter {unit.index + 1}.")

    def _handle_end_of_stream(self) -> None:
        if self._loaded_unit is None:
            return
        previous = self._manager.units[self._loaded_unit]
        if self._manager.advance():
            self._loaded_unit = None
            self._continue_with_next(previous)
        else:
            self._halt_engine()

    def _continue_with_next(self, previous: PlayableUnit) -> None:
        """Keep playing after the state advanced past `previous`."""

        current = self._manager.current_unit
        if current is None:
            return
        self.messages.push(f"Starting chapter {current.index + 1}.")
        if self._loaded_unit is not None and _contiguous(previous, current):
            self._loaded_unit = current.index
            return
        if self._load_current() and self._manager.state.status is PlaybackStatus.PLAYING:
            sequence = self._next_sequence()
            self._issue(lambda: self._engine.play(sequence))

    def _halt_engine(self) -> None:
        self._loaded_unit = None
        sequence = self._next_sequence()
        self._position_sequence = sequence
        try:
            self._engine.stop()
        except EngineError as exc:
            self._report_failure(exc.detail)

    def _report_failure(self, reason: str) -> None:
        """Surface an engine failure; the position is left untouched."""

        self.messages.push(f"Playback engine error: {reason}")
        if self._logger is not None:
            self._logger.warning("controller", "engine-failure", sequence=self._sequence)
        if self._manager.pause():
            self._loaded_unit = None


def _contiguous(previous: PlayableUnit, current: PlayableUnit) -> bool:
    """Return whether `current` starts exactly where `previous` ends in one file."""

    match (previous.source, current.source):
        case (ContainerRange(path=left_path, end_ms=left_end), ContainerRange(
            path=right_path, start_ms=right_start
        )):
            return left_path == right_path and left_end == right_start
    return False
