"""Unit tests for deterministic session event logging."""

from __future__ import annotations

import io

from earmark.errors import EngineError
from earmark.telemetry.logger import SessionLogger


def test_session_logger_emits_sorted_sanitized_context() -> None:
    """Context keys are sorted and unsafe characters are replaced."""

    sink = io.StringIO()
    logger = SessionLogger(sink=sink)

    logger.info("session", "start", units=3, kind="container", key="ab cd")

    assert sink.getvalue().strip() == (
        "[session] level=INFO component=session event=start "
        "key=ab_cd kind=container units=3"
    )


def test_session_logger_respects_level_threshold() -> None:
    """Events below the configured level are not written."""

    sink = io.StringIO()
    logger = SessionLogger(sink=sink, level="WARNING")

    logger.info("engine", "load", unit=0)
    logger.warning("persistence", "corrupt-record", key="")

    assert sink.getvalue().strip() == (
        "[session] level=WARNING component=persistence event=corrupt-record key=none"
    )


def test_session_logger_failure_omits_error_payload() -> None:
    """Failures log only the error type, never its message text."""

    sink = io.StringIO()
    logger = SessionLogger(sink=sink)

    logger.failure("engine", EngineError("secret device path /home/me"))

    line = sink.getvalue().strip()
    assert line == "[session] level=ERROR component=engine event=failure error_type=EngineError"
    assert "secret" not in line
