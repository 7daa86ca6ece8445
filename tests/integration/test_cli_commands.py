"""CLI integration tests for `play` and the offline session-record commands."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from earmark.cli import app


def _invoke(*args: str, input: str | None = None):
    return CliRunner().invoke(app, list(args), input=input)


def _added_id(output: str) -> str:
    line = next(line for line in output.splitlines() if line.startswith("Added bookmark "))
    return line.removeprefix("Added bookmark ").split(":", 1)[0]


def test_play_prints_summary_and_saves_on_quit(
    novel_path: Path, tmp_path: Path, fake_engine
) -> None:
    """`play` starts playback, accepts commands from stdin, and saves on quit."""

    state_dir = tmp_path / "state"

    result = _invoke(
        "play", str(novel_path), "--state-dir", str(state_dir), input="c 2\nbm clue\nq\n"
    )

    assert result.exit_code == 0
    assert "Book: The Novel" in result.output
    assert "Source: container (3 unit(s))" in result.output
    assert "[playing] 1/3 Arrival" in result.output
    assert "Type `help` for commands." in result.output
    assert 'Added a bookmark "clue" at 0s.' in result.output
    assert fake_engine.names[:2] == ["load", "play"]
    assert fake_engine.names[-1] == "stop"

    status = _invoke("status", str(novel_path), "--state-dir", str(state_dir))
    assert "Chapter: 2. The Butler Did It" in status.output
    assert "Bookmarks: 1" in status.output


def test_play_paused_with_antispoiler_never_shows_later_titles(
    novel_path: Path, tmp_path: Path, fake_engine
) -> None:
    """A paused antispoiler session loads nothing and hides unheard chapters."""

    result = _invoke(
        "play",
        str(novel_path),
        "--state-dir",
        str(tmp_path / "state"),
        "--paused",
        "--antispoiler",
        input="q\n",
    )

    assert result.exit_code == 0
    assert "[stopped] 1/3 Arrival" in result.output
    assert "The Butler Did It" not in result.output
    assert "Epilogue" not in result.output
    assert "load" not in fake_engine.names


def test_chapters_lists_durations_and_masks_when_requested(
    novel_path: Path, tmp_path: Path
) -> None:
    """`chapters` shows every chapter, or masks those after the saved one."""

    state_dir = str(tmp_path / "state")

    plain = _invoke("chapters", str(novel_path), "--state-dir", state_dir)
    masked = _invoke("chapters", str(novel_path), "--state-dir", state_dir, "--antispoiler")

    assert plain.exit_code == 0
    assert "* 1. Arrival (1m40s)" in plain.output
    assert "  2. The Butler Did It (3m20s)" in plain.output
    assert "  3. Epilogue (2m30s)" in plain.output
    assert masked.exit_code == 0
    assert "  2. ??? 2 (--)" in masked.output
    assert "  3. ??? 3 (--)" in masked.output
    assert "Epilogue" not in masked.output


def test_status_without_saved_session(novel_path: Path, tmp_path: Path) -> None:
    """`status` reports when a source has never been played."""

    result = _invoke("status", str(novel_path), "--state-dir", str(tmp_path / "state"))

    assert result.exit_code == 0
    assert "No saved session." in result.output


def test_bookmark_add_list_and_remove(novel_path: Path, tmp_path: Path) -> None:
    """Offline bookmark commands edit the saved record without playing."""

    state_dir = str(tmp_path / "state")

    added = _invoke(
        "bookmark-add",
        str(novel_path),
        "--state-dir",
        state_dir,
        "--chapter",
        "2",
        "--at",
        "1m5s",
        "--label",
        "clue",
    )
    assert added.exit_code == 0
    bookmark_id = _added_id(added.output)
    assert added.output.strip().endswith('"clue" at 1m5s')

    listed = _invoke("bookmarks", str(novel_path), "--state-dir", state_dir)
    assert f'{bookmark_id}  2. The Butler Did It at 1m5s "clue"' in listed.output

    removed = _invoke("bookmark-remove", str(novel_path), bookmark_id, "--state-dir", state_dir)
    again = _invoke("bookmark-remove", str(novel_path), bookmark_id, "--state-dir", state_dir)

    assert f"Removed bookmark {bookmark_id}." in removed.output
    assert f"No bookmark `{bookmark_id}`; nothing removed." in again.output
    assert "No bookmarks." in _invoke(
        "bookmarks", str(novel_path), "--state-dir", state_dir
    ).output


def test_bookmark_add_rejects_positions_outside_the_chapter(
    novel_path: Path, tmp_path: Path
) -> None:
    """Bookmarks past a chapter's end or in a missing chapter fail with exit code 1."""

    state_dir = str(tmp_path / "state")

    missing = _invoke(
        "bookmark-add", str(novel_path), "--state-dir", state_dir, "--chapter", "9"
    )
    too_far = _invoke(
        "bookmark-add", str(novel_path), "--state-dir", state_dir, "--at", "5m"
    )

    assert missing.exit_code == 1
    assert "bookmark-add failed at stage `position`: Chapter 9 does not exist." in missing.output
    assert too_far.exit_code == 1
    assert "bookmark-add failed at stage `position`" in too_far.output


def test_forget_deletes_the_saved_session(novel_path: Path, tmp_path: Path) -> None:
    """`forget` removes the record once and then reports nothing to forget."""

    state_dir = str(tmp_path / "state")
    _invoke("bookmark-add", str(novel_path), "--state-dir", state_dir)

    first = _invoke("forget", str(novel_path), "--state-dir", state_dir)
    second = _invoke("forget", str(novel_path), "--state-dir", state_dir)

    assert first.exit_code == 0
    assert "Forgot saved session for" in first.output
    assert "No saved session for" in second.output


def test_bookmark_rename_changes_the_saved_label(novel_path: Path, tmp_path: Path) -> None:
    """`bookmark-rename` relabels a saved bookmark and rejects unknown ids."""

    state_dir = str(tmp_path / "state")
    added = _invoke(
        "bookmark-add", str(novel_path), "--state-dir", state_dir, "--label", "clue"
    )
    bookmark_id = _added_id(added.output)

    renamed = _invoke(
        "bookmark-rename", str(novel_path), bookmark_id, "the real clue", "--state-dir", state_dir
    )
    missing = _invoke(
        "bookmark-rename", str(novel_path), "bk-missing", "x", "--state-dir", state_dir
    )
    listed = _invoke("bookmarks", str(novel_path), "--state-dir", state_dir)

    assert renamed.exit_code == 0
    assert f'Renamed bookmark {bookmark_id}: "the real clue" at 0s' in renamed.output
    assert f'{bookmark_id}  1. Arrival at 0s "the real clue"' in listed.output
    assert missing.exit_code == 1
    assert "bookmark-rename failed at stage `position`: Unknown bookmark `bk-missing`." in (
        missing.output
    )


def test_chapters_prints_later_descriptions_unless_antispoiler_is_on(
    novel_path: Path, tmp_path: Path
) -> None:
    """Chapter notes after the saved chapter only show with antispoiler off."""

    state_dir = str(tmp_path / "state")
    _invoke(
        "play",
        str(novel_path),
        "--state-dir",
        state_dir,
        "--paused",
        input="c 2\nd who did it\nc 1\nq\n",
    )

    plain = _invoke("chapters", str(novel_path), "--state-dir", state_dir)
    masked = _invoke("chapters", str(novel_path), "--state-dir", state_dir, "--antispoiler")

    assert "      who did it" in plain.output
    assert "who did it" not in masked.output
