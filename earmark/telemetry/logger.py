"""Structured session logging utilities.

Responsibilities:
- Emit concise, deterministic component-level session events through `loguru`.
- Keep payloads free of user labels and notes; only ids, indices and reasons.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class SessionLogger:
    """Emit deterministic event lines for session, catalog, and storage activity."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Route loguru output to one sink with a bare message format."""

        self._sink = sink or sys.stderr
        _loguru_logger.remove()
        _loguru_logger.add(self._sink, format="{message}", level=level, colorize=False)

    def _emit(self, level: str, component: str, event: str, **context: object) -> None:
        line = (
            f"[session] level={level} component={component} "
            f"event={event}{_format_context(context)}"
        )
        _loguru_logger.log(level, line)

    def info(self, component: str, event: str, **context: object) -> None:
        """Emit an informational event."""

        self._emit("INFO", component, event, **context)

    def warning(self, component: str, event: str, **context: object) -> None:
        """Emit a recoverable-failure event."""

        self._emit("WARNING", component, event, **context)

    def failure(self, component: str, error: Exception) -> None:
        """Emit a failure event carrying only the error type, never its payload."""

        self._emit("ERROR", component, "failure", error_type=type(error).__name__)

