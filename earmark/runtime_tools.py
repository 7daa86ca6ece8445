"""Runtime executable resolution for the ffmpeg-family tools.

Resolution order for a configured tool value:
1. An explicit path (the configured value contains a path separator).
2. Bundled app directories (`./bin/<tool>` then `./<tool>` from app root).
3. System `PATH`.
4. The raw value, letting `subprocess` raise its native missing-binary error.
"""

from __future__ import annotations

import os
from pathlib import Path
import shutil
import sys


def resolve_executable(configured: str) -> str:
    """Resolve a configured tool name or path to an executable location."""

    normalized = configured.strip()
    if not normalized:
        return configured

    if os.sep in normalized or (os.altsep and os.altsep in normalized):
        return str(Path(normalized).expanduser())

    for candidate in _bundled_candidates(normalized):
        if candidate.is_file():
            return str(candidate)

    return shutil.which(normalized) or normalized


def _bundled_candidates(command_name: str) -> list[Path]:
    app_root = _app_root()
    names = (command_name,) if command_name.lower().endswith(".exe") else (
        command_name,
        f"{command_name}.exe",
    )
    candidates: list[Path] = []
    for name in names:
        candidates.append(app_root / "bin" / name)
        candidates.append(app_root / name)
    return candidates


def _app_root() -> Path:
    """Resolve runtime application root for frozen and non-frozen execution."""

    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]
