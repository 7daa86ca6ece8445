"""CLI error-handling tests for concise stage diagnostics."""

from pathlib import Path

from pytest import MonkeyPatch
from typer.testing import CliRunner

from earmark.cli import app


def test_play_reports_missing_source_with_hint(tmp_path: Path) -> None:
    """Play should print stage-aware diagnostics and fail with exit code 1."""

    runner = CliRunner()

    result = runner.invoke(
        app,
        ["play", str(tmp_path / "missing.m4b"), "--state-dir", str(tmp_path / "state")],
        input="q\n",
    )

    assert result.exit_code == 1
    assert "play failed at stage `catalog`" in result.output
    assert "Hint: Pass an existing audio file, container, or directory." in result.output


def test_status_reports_non_stage_error(monkeypatch: MonkeyPatch, novel_path: Path) -> None:
    """Status should still report non-stage exceptions with exit code 1."""

    def _failing_load(*_: object, **__: object) -> None:
        """Raise a generic error to verify fallback CLI diagnostics."""

        raise RuntimeError("unexpected record error")

    monkeypatch.setattr("earmark.cli.StateStore.load", _failing_load)
    runner = CliRunner()

    result = runner.invoke(app, ["status", str(novel_path), "--state-dir", "unused"])

    assert result.exit_code == 1
    assert "status failed: unexpected record error" in result.output


def test_play_reports_missing_config_file(novel_path: Path) -> None:
    """Play should fail with stage-aware diagnostics when `--config` path is missing."""

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["play", str(novel_path), "--config", "missing-earmark.yaml"],
    )

    assert result.exit_code == 1
    assert "play failed at stage `config`" in result.output
    assert "Config file not found: `missing-earmark.yaml`." in result.output


def test_chapters_reports_invalid_config_payload(novel_path: Path, tmp_path: Path) -> None:
    """Chapters should fail fast when YAML config values are invalid."""

    config_path = tmp_path / "invalid.yaml"
    config_path.write_text("speed_step: -1\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(app, ["chapters", str(novel_path), "--config", str(config_path)])

    assert result.exit_code == 1
    assert "chapters failed at stage `config`" in result.output
    assert "field `speed_step` must be a positive" in result.output


def test_status_reports_invalid_environment_config(
    monkeypatch: MonkeyPatch, novel_path: Path
) -> None:
    """Invalid `EARMARK_*` values should be reported as environment config errors."""

    monkeypatch.setenv("EARMARK_ANTISPOILER", "sometimes")
    runner = CliRunner()

    result = runner.invoke(app, ["status", str(novel_path)])

    assert result.exit_code == 1
    assert "status failed at stage `config`: Invalid config in environment" in result.output


def test_corrupt_record_is_reported_but_not_fatal(novel_path: Path, tmp_path: Path) -> None:
    """A corrupt saved session is ignored with a message instead of failing."""

    state_dir = tmp_path / "state"
    state_dir.mkdir()
    runner = CliRunner()
    runner.invoke(app, ["bookmark-add", str(novel_path), "--state-dir", str(state_dir)])
    for record in state_dir.rglob("*.json"):
        record.write_text("[]", encoding="utf-8")

    result = runner.invoke(app, ["status", str(novel_path), "--state-dir", str(state_dir)])

    assert result.exit_code == 0
    assert "Saved session ignored:" in result.output
    assert "No saved session." in result.output


def test_engine_failure_during_play_becomes_a_message(
    novel_path: Path, tmp_path: Path, fake_engine
) -> None:
    """An engine that cannot start keeps the session alive and paused."""

    fake_engine.fail_on.add("play")
    runner = CliRunner()

    result = runner.invoke(
        app, ["play", str(novel_path), "--state-dir", str(tmp_path / "state")], input="q\n"
    )

    assert result.exit_code == 0
    assert "Playback engine error: play rejected by device" in result.output
    assert "[paused] 1/3 Arrival" in result.output
