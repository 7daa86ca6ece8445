"""Configuration model and loaders for earmark.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Provide loader entry points for file- and environment-based configuration.
- Resolve the default per-user state directory.

Key types:
- `EarmarkConfig`: normalized runtime settings for a listening session.
- `ConfigLoader`: static construction helpers for `EarmarkConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import normalize_optional_string, parse_permissive_boolean


_DEFAULT_SPEED_MIN = 0.5
_DEFAULT_SPEED_MAX = 3.0
_DEFAULT_SPEED_STEP = 0.25
_DEFAULT_SEEK_STEP_SECONDS = 5
_DEFAULT_VOLUME_STEP = 0.05
_DEFAULT_AUTOSAVE_SECONDS = 5.0
_DEFAULT_TICK_SECONDS = 0.25


def default_state_dir(env: Mapping[str, str] | None = None) -> Path:
    """Return the per-user directory holding persisted session records.

    Uses `$XDG_STATE_HOME/earmark` when set, else `~/.local/state/earmark`.
    """

    env_map: Mapping[str, str] = os.environ if env is None else env
    xdg_state = normalize_optional_string(env_map.get("XDG_STATE_HOME"))
    if xdg_state is not None:
        return Path(xdg_state) / "earmark"
    return Path.home() / ".local" / "state" / "earmark"


@dataclass(slots=True)
class EarmarkConfig:
    """Runtime configuration for one listening session.

    Attributes:
        state_dir: Directory holding one JSON record per audiobook identity.
        speed_min: Lowest allowed playback rate.
        speed_max: Highest allowed playback rate.
        speed_step: Rate change applied by speed up/down commands.
        seek_step_seconds: Default jump for relative seek commands.
        volume_step: Volume change applied by volume up/down commands.
        autosave_seconds: Interval between periodic state snapshots.
        tick_seconds: Event-loop polling interval for engine events.
        antispoiler: Whether antispoiler mode starts enabled.
        ffprobe_path: Executable used to read chapters and tags.
        ffplay_path: Executable used for audio output.
    """

    state_dir: Path = field(default_factory=default_state_dir)
    speed_min: float = _DEFAULT_SPEED_MIN
    speed_max: float = _DEFAULT_SPEED_MAX
    speed_step: float = _DEFAULT_SPEED_STEP
    seek_step_seconds: int = _DEFAULT_SEEK_STEP_SECONDS
    volume_step: float = _DEFAULT_VOLUME_STEP
    autosave_seconds: float = _DEFAULT_AUTOSAVE_SECONDS
    tick_seconds: float = _DEFAULT_TICK_SECONDS
    antispoiler: bool = False
    ffprobe_path: str = "ffprobe"
    ffplay_path: str = "ffplay"

    def validate(self) -> None:
        """Validate configuration values before a session starts."""

        if self.speed_min <= 0:
            raise ValueError("`speed_min` must be a positive number.")
        if self.speed_max < self.speed_min:
            raise ValueError("`speed_max` must be greater than or equal to `speed_min`.")
        if self.speed_step <= 0:
            raise ValueError("`speed_step` must be a positive number.")
        if self.seek_step_seconds <= 0:
            raise ValueError("`seek_step_seconds` must be a positive integer.")
        if not 0 < self.volume_step <= 1:
            raise ValueError("`volume_step` must be within (0, 1].")
        if self.autosave_seconds <= 0:
            raise ValueError("`autosave_seconds` must be a positive number.")
        if self.tick_seconds <= 0:
            raise ValueError("`tick_seconds` must be a positive number.")
        if not self.ffprobe_path.strip():
            raise ValueError("`ffprobe_path` must be a non-empty string.")
        if not self.ffplay_path.strip():
            raise ValueError("`ffplay_path` must be a non-empty string.")

    @property
    def speed_bounds(self) -> tuple[float, float]:
        """Return `(speed_min, speed_max)`."""

        return self.speed_min, self.speed_max

    def with_overrides(
        self,
        *,
        state_dir: Path | None = None,
    ) -> EarmarkConfig:
        """Return a copy with explicit CLI overrides applied."""

        updated = self
        if state_dir is not None:
            updated = replace(updated, state_dir=state_dir)
        updated.validate()
        return updated


class ConfigLoader:
    """Factory methods for creating `EarmarkConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "state_dir",
            "speed_min",
            "speed_max",
            "speed_step",
            "seek_step_seconds",
            "volume_step",
            "autosave_seconds",
            "tick_seconds",
            "antispoiler",
            "ffprobe_path",
            "ffplay_path",
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> EarmarkConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = yaml.safe_load(path_text)
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")

        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> EarmarkConfig:
        """Create a validated config from `EARMARK_*` environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        payload: dict[str, Any] = {}
        for key in ConfigLoader._SUPPORTED_YAML_KEYS:
            env_key = f"EARMARK_{key.upper()}"
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                payload[key] = value

        config = ConfigLoader._build_config_from_mapping(
            payload, source_label="Environment"
        )
        if "state_dir" not in payload:
            config.state_dir = default_state_dir(env_map)
        return config

    @staticmethod
    def _build_config_from_mapping(payload: Mapping[str, Any], source_label: str) -> EarmarkConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        state_dir_text = ConfigLoader._optional_non_empty_string(payload, "state_dir")
        config = EarmarkConfig(
            speed_min=ConfigLoader._optional_positive_float(
                payload, "speed_min", source_label, default=_DEFAULT_SPEED_MIN
            ),
            speed_max=ConfigLoader._optional_positive_float(
                payload, "speed_max", source_label, default=_DEFAULT_SPEED_MAX
            ),
            speed_step=ConfigLoader._optional_positive_float(
                payload, "speed_step", source_label, default=_DEFAULT_SPEED_STEP
            ),
            seek_step_seconds=ConfigLoader._optional_positive_int(
                payload, "seek_step_seconds", source_label, default=_DEFAULT_SEEK_STEP_SECONDS
            ),
            volume_step=ConfigLoader._optional_positive_float(
                payload, "volume_step", source_label, default=_DEFAULT_VOLUME_STEP
            ),
            autosave_seconds=ConfigLoader._optional_positive_float(
                payload, "autosave_seconds", source_label, default=_DEFAULT_AUTOSAVE_SECONDS
            ),
            tick_seconds=ConfigLoader._optional_positive_float(
                payload, "tick_seconds", source_label, default=_DEFAULT_TICK_SECONDS
            ),
            antispoiler=ConfigLoader._optional_boolean(
                payload, "antispoiler", source_label, default=False
            ),
            ffprobe_path=ConfigLoader._optional_non_empty_string(payload, "ffprobe_path")
            or "ffprobe",
            ffplay_path=ConfigLoader._optional_non_empty_string(payload, "ffplay_path")
            or "ffplay",
        )
        if state_dir_text is not None:
            config.state_dir = Path(state_dir_text).expanduser()
        config.validate()
        return config

    @staticmethod
    def _optional_non_empty_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read an optional string field and normalize blank values to `None`."""

        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_positive_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a positive integer payload field."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a positive integer.")
        if isinstance(raw_value, int):
            parsed = raw_value
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = int(normalized)
            except ValueError as exc:
                raise ValueError(
                    f"{source_label} field `{key}` must be a positive integer."
                ) from exc

        if parsed <= 0:
            raise ValueError(f"{source_label} field `{key}` must be a positive integer.")
        return parsed

    @staticmethod
    def _optional_positive_float(
        payload: Mapping[str, Any], key: str, source_label: str, default: float
    ) -> float:
        """Read and validate a positive number payload field."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a positive number.")
        if isinstance(raw_value, (int, float)):
            parsed = float(raw_value)
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = float(normalized)
            except ValueError as exc:
                raise ValueError(
                    f"{source_label} field `{key}` must be a positive number."
                ) from exc

        if parsed <= 0:
            raise ValueError(f"{source_label} field `{key}` must be a positive number.")
        return parsed

    @staticmethod
    def _optional_boolean(
        payload: Mapping[str, Any], key: str, source_label: str, default: bool
    ) -> bool:
        """Read and validate a boolean field from a payload."""

        if key not in payload:
            return default

        parsed = parse_permissive_boolean(payload[key])
        if parsed is None:
            raise ValueError(
                f"{source_label} field `{key}` must be a boolean value "
                "(`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed
