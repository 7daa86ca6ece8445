"""`ffplay`-backed playback engine.

Responsibilities:
- Play one file at an absolute offset, rate, and volume via an `ffplay` child process.
- Track the position from a monotonic clock scaled by the playback rate.
- Restart the process at the tracked offset on pause/resume, seek, rate, or volume changes.
- Report ticks, end of stream (exit status 0), and failures (nonzero exit) as events.
"""

from __future__ import annotations

from pathlib import Path
import subprocess
import threading
import time
from typing import Callable

from ..errors import EngineError
from ..runtime_tools import resolve_executable
from ..session.controller import EndOfStream, EngineEvent, EngineFailure, PositionTick
from ..telemetry.logger import SessionLogger

# A single atempo instance accepts 0.5..2.0 on older ffmpeg builds.
_ATEMPO_MAX = 2.0
_ATEMPO_MIN = 0.5


def atempo_filter(rate: float) -> str:
    """Build an `atempo` filter chain equivalent to `rate`."""

    if rate <= 0:
        raise EngineError(f"Playback rate must be positive, got {rate}.")
    stages: list[float] = []
    remaining = rate
    while remaining > _ATEMPO_MAX:
        stages.append(_ATEMPO_MAX)
        remaining /= _ATEMPO_MAX
    while remaining < _ATEMPO_MIN:
        stages.append(_ATEMPO_MIN)
        remaining /= _ATEMPO_MIN
    stages.append(remaining)
    return ",".join(f"atempo={stage:.4g}" for stage in stages)


class FfplayEngine:
    """Drive `ffplay -nodisp -autoexit` as an external audio engine."""

    def __init__(
        self,
        executable: str = "ffplay",
        clock: Callable[[], float] = time.monotonic,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        logger: SessionLogger | None = None,
    ) -> None:
        self._executable = executable
        self._clock = clock
        self._popen = popen
        self._logger = logger
        self._lock = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._path: Path | None = None
        self._anchor_ms = 0
        self._anchor_time = 0.0
        self._rate = 1.0
        self._volume = 0.5
        self._playing = False
        self._sequence = 0
        self._events: list[EngineEvent] = []

    def build_command(self, path: Path, offset_ms: int) -> list[str]:
        """Return the `ffplay` argument list for one playback run."""

        return [
            resolve_executable(self._executable),
            "-nodisp",
            "-autoexit",
            "-hide_banner",
            "-loglevel",
            "error",
            "-ss",
            f"{max(0, offset_ms) / 1000:.3f}",
            "-volume",
            str(int(round(self._volume * 100))),
            "-af",
            atempo_filter(self._rate),
            str(path),
        ]

    def load(self, path: Path, offset_ms: int, rate: float, volume: float, sequence: int) -> None:
        with self._lock:
            self._terminate()
            self._path = path
            self._anchor_ms = max(0, offset_ms)
            self._rate = rate
            self._volume = volume
            self._playing = False
            self._sequence = sequence
            self._events.clear()

    def play(self, sequence: int) -> None:
        with self._lock:
            self._sequence = sequence
            if self._playing:
                return
            self._spawn()

    def pause(self, sequence: int) -> None:
        with self._lock:
            self._sequence = sequence
            if not self._playing:
                return
            self._anchor_ms = self._tracked_position()
            self._terminate()

    def seek(self, offset_ms: int, sequence: int) -> None:
        with self._lock:
            self._sequence = sequence
            self._anchor_ms = max(0, offset_ms)
            if self._playing:
                self._restart()

    def set_rate(self, rate: float, sequence: int) -> None:
        with self._lock:
            self._sequence = sequence
            self._anchor_ms = self._tracked_position()
            self._rate = rate
            if self._playing:
                self._restart()

    def set_volume(self, volume: float, sequence: int) -> None:
        with self._lock:
            self._sequence = sequence
            self._anchor_ms = self._tracked_position()
            self._volume = volume
            if self._playing:
                self._restart()

    def stop(self) -> None:
        with self._lock:
            self._terminate()
            self._path = None

    def position_ms(self) -> int | None:
        with self._lock:
            if self._path is None:
                return None
            return self._tracked_position()

    def poll_events(self) -> list[EngineEvent]:
        """Check the child process and return pending events."""

        with self._lock:
            if self._playing and self._process is not None:
                return_code = self._process.poll()
                if return_code is None:
                    self._events.append(PositionTick(self._sequence, self._tracked_position()))
                else:
                    self._anchor_ms = self._tracked_position()
                    self._process = None
                    self._playing = False
                    if return_code == 0:
                        self._events.append(EndOfStream(self._sequence))
                    else:
                        self._events.append(
                            EngineFailure(self._sequence, f"ffplay exited with status {return_code}.")
                        )
            events = list(self._events)
            self._events.clear()
            return events

    def _tracked_position(self) -> int:
        if not self._playing:
            return self._anchor_ms
        elapsed = max(0.0, self._clock() - self._anchor_time)
        return self._anchor_ms + int(elapsed * 1000 * self._rate)

    def _restart(self) -> None:
        self._terminate()
        self._spawn()

    def _spawn(self) -> None:
        if self._path is None:
            raise EngineError(
                "Nothing is loaded in the playback engine.",
                hint="Load a unit before starting playback.",
            )
        command = self.build_command(self._path, self._anchor_ms)
        try:
            self._process = self._popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError as exc:
            raise EngineError(
                f"Playback tool `{self._executable}` is not available on PATH.",
                hint="Install ffmpeg (which provides ffplay) or set `ffplay_path`.",
            ) from exc
        except OSError as exc:
            raise EngineError(f"Failed to start `{self._executable}`: {exc}") from exc
        self._anchor_time = self._clock()
        self._playing = True
        if self._logger is not None:
            self._logger.info(
                "engine",
                "spawn",
                offset_ms=self._anchor_ms,
                rate=self._rate,
                sequence=self._sequence,
            )

    def _terminate(self) -> None:
        process = self._process
        self._process = None
        self._playing = False
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
