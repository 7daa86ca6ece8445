"""Command-line interface for earmark.

Responsibilities:
- Expose the interactive `play` session and offline session-record commands.
- Convert CLI arguments and config sources into `EarmarkConfig`.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
import queue
import sys
from typing import Annotated

import typer

from .catalog import Catalog, CatalogResolver, FfprobeMetadataReader
from .cli_rendering import (
    echo_bookmark_rows,
    echo_catalog_summary,
    echo_chapter_rows,
    echo_saved_state,
    exit_with_command_error,
    format_status_line,
)
from .cli_runtime import run_session_loop, start_input_reader
from .config import ConfigLoader, EarmarkConfig
from .engine import FfplayEngine
from .errors import EarmarkError, InvalidPosition
from .io.storage import StateStore
from .models.datatypes import AudiobookIdentity, PersistedState, PlaybackState
from .parsing import parse_position_text
from .session import BookmarkStore, ListeningSession, describe_bookmark, visible_rows
from .session.antispoiler import visible_titles
from .session.messages import StatusMessages
from .session.orchestrator import fresh_record, read_record
from .telemetry.logger import SessionLogger

app = typer.Typer(
    name="earmark",
    no_args_is_help=True,
    help="Audiobook listening sessions with resume, bookmarks, and antispoiler mode.",
)

SourceArgument = Annotated[
    Path, typer.Argument(help="Audio file, chapterized container, or directory of audio files.")
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file."),
]
StateDirOption = Annotated[
    Path | None,
    typer.Option("--state-dir", help="Directory holding saved sessions (overrides config)."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", help="Log session events at INFO level to stderr."),
]


def _load_config(config_file: Path | None, state_dir: Path | None) -> EarmarkConfig:
    """Load YAML or environment config and map failures to component errors."""

    try:
        if config_file is None:
            loaded = ConfigLoader.from_env()
        else:
            loaded = ConfigLoader.from_yaml(config_file)
        return loaded.with_overrides(state_dir=state_dir)
    except FileNotFoundError as exc:
        raise EarmarkError(
            stage="config",
            detail=f"Config file not found: `{config_file}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        source = f"`{config_file}`" if config_file is not None else "environment"
        raise EarmarkError(
            stage="config",
            detail=f"Invalid config in {source}: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc
    except Exception as exc:
        raise EarmarkError(
            stage="config",
            detail=f"Failed to load config file `{config_file}`: {exc}",
            hint="Verify YAML syntax and file permissions.",
        ) from exc


def _session_logger(verbose: bool) -> SessionLogger:
    return SessionLogger(level="INFO" if verbose else "WARNING")


def _resolve_catalog(path: Path, config: EarmarkConfig, logger: SessionLogger) -> Catalog:
    resolver = CatalogResolver(FfprobeMetadataReader(config.ffprobe_path), logger=logger)
    return resolver.resolve_path(path)


def _echo_messages(messages: StatusMessages) -> None:
    for message in messages.drain():
        typer.echo(message)


def _effective_antispoiler(
    flag: bool | None, record: PersistedState | None, config: EarmarkConfig
) -> bool:
    if flag is not None:
        return flag
    if record is not None:
        return record.antispoiler
    return config.antispoiler


def _current_index(record: PersistedState | None, catalog: Catalog) -> int:
    if record is None or not 0 <= record.unit_index < len(catalog.units):
        return 0
    return record.unit_index


@app.command("play")
def play_command(
    path: SourceArgument,
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
    antispoiler: Annotated[
        bool | None,
        typer.Option(
            "--antispoiler/--no-antispoiler",
            help="Mask titles of chapters after the current one (default: saved or config).",
        ),
    ] = None,
    paused: Annotated[
        bool,
        typer.Option("--paused", help="Restore the session without starting playback."),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Play an audiobook interactively, resuming where it was left off."""

    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(verbose)
        catalog = _resolve_catalog(path, config, logger)
        session = ListeningSession(
            catalog,
            StateStore(config.state_dir, logger=logger),
            FfplayEngine(config.ffplay_path, logger=logger),
            config,
            antispoiler=antispoiler,
            logger=logger,
        )
    except Exception as exc:
        exit_with_command_error("play", exc)

    echo_catalog_summary(catalog)
    if not paused:
        session.controller.play()
    view = session.view()
    for message in view.messages:
        typer.echo(message)
    typer.echo(format_status_line(view))
    typer.echo("Type `help` for commands.")

    commands: queue.Queue = queue.Queue()
    start_input_reader(sys.stdin, commands)
    try:
        run_session_loop(
            session,
            commands,
            tick_seconds=config.tick_seconds,
            echo=typer.echo,
            status_line=format_status_line,
        )
    except KeyboardInterrupt:
        typer.echo("Interrupted; session saved.")


@app.command("chapters")
def chapters_command(
    path: SourceArgument,
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
    antispoiler: Annotated[
        bool | None,
        typer.Option(
            "--antispoiler/--no-antispoiler",
            help="Mask chapters after the saved position (default: saved or config).",
        ),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """List chapters with durations, masking unheard ones in antispoiler mode."""

    messages = StatusMessages()
    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(verbose)
        catalog = _resolve_catalog(path, config, logger)
        record = read_record(
            StateStore(config.state_dir, logger=logger), catalog.identity, messages, logger
        )
    except Exception as exc:
        exit_with_command_error("chapters", exc)

    current = _current_index(record, catalog)
    enabled = _effective_antispoiler(antispoiler, record, config)
    _echo_messages(messages)
    echo_catalog_summary(catalog)
    echo_chapter_rows(
        visible_rows(catalog.units, current, enabled),
        current,
        record.descriptions if record is not None else None,
        antispoiler=enabled,
    )


@app.command("status")
def status_command(
    path: SourceArgument,
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Show the saved position and settings for an audiobook."""

    messages = StatusMessages()
    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(verbose)
        catalog = _resolve_catalog(path, config, logger)
        record = read_record(
            StateStore(config.state_dir, logger=logger), catalog.identity, messages, logger
        )
    except Exception as exc:
        exit_with_command_error("status", exc)

    _echo_messages(messages)
    echo_catalog_summary(catalog)
    if record is None:
        typer.echo("No saved session.")
        return
    current = _current_index(record, catalog)
    echo_saved_state(record, catalog.units[current].title)


@app.command("bookmarks")
def bookmarks_command(
    path: SourceArgument,
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
) -> None:
    """List saved bookmarks ordered by chapter and position."""

    messages = StatusMessages()
    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(False)
        catalog = _resolve_catalog(path, config, logger)
        record = read_record(
            StateStore(config.state_dir, logger=logger), catalog.identity, messages, logger
        )
    except Exception as exc:
        exit_with_command_error("bookmarks", exc)

    _echo_messages(messages)
    if record is None:
        typer.echo("No bookmarks.")
        return
    titles = visible_titles(
        catalog.units,
        _current_index(record, catalog),
        _effective_antispoiler(None, record, config),
    )
    echo_bookmark_rows(BookmarkStore(record.bookmarks).list(), titles)


@app.command("bookmark-add")
def bookmark_add_command(
    path: SourceArgument,
    label: Annotated[str | None, typer.Option("--label", help="Bookmark label.")] = None,
    chapter: Annotated[
        int | None,
        typer.Option("--chapter", min=1, help="1-based chapter (default: saved chapter)."),
    ] = None,
    at: Annotated[
        str | None,
        typer.Option("--at", help="Position inside the chapter, e.g. `1h2m3s` (default: saved)."),
    ] = None,
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
) -> None:
    """Add a bookmark without starting playback."""

    messages = StatusMessages()
    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(False)
        catalog = _resolve_catalog(path, config, logger)
        store = StateStore(config.state_dir, logger=logger)
        record = read_record(store, catalog.identity, messages, logger) or fresh_record(
            catalog.identity, config.antispoiler
        )

        unit_index = chapter - 1 if chapter is not None else _current_index(record, catalog)
        if not 0 <= unit_index < len(catalog.units):
            raise InvalidPosition(
                f"Chapter {unit_index + 1} does not exist.",
                hint=f"Choose a chapter between 1 and {len(catalog.units)}.",
            )
        if at is not None:
            offset_ms = parse_position_text(at)
            if offset_ms is None:
                raise InvalidPosition(
                    f"Unrecognized position `{at}`.",
                    hint="Use a form like `1h2m3s`, `90s`, or `5m`.",
                )
        elif chapter is not None:
            offset_ms = 0
        else:
            offset_ms = record.offset_ms

        bookmarks = BookmarkStore(record.bookmarks)
        bookmark = bookmarks.add(
            PlaybackState(unit_index=unit_index, offset_ms=offset_ms),
            label=label,
            duration_ms=catalog.units[unit_index].duration_ms,
        )
        store.save(
            catalog.identity,
            replace(
                record,
                bookmarks=bookmarks.snapshot(),
                saved_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            ),
        )
    except Exception as exc:
        exit_with_command_error("bookmark-add", exc)

    _echo_messages(messages)
    typer.echo(f"Added bookmark {bookmark.bookmark_id}: {describe_bookmark(bookmark)}")


@app.command("bookmark-remove")
def bookmark_remove_command(
    path: Annotated[Path, typer.Argument(help="Audiobook source path.")],
    bookmark_id: Annotated[str, typer.Argument(help="Bookmark id as printed by `bookmarks`.")],
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
) -> None:
    """Remove a bookmark; unknown ids are reported and ignored."""

    messages = StatusMessages()
    removed = False
    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(False)
        identity = AudiobookIdentity.from_path(path)
        store = StateStore(config.state_dir, logger=logger)
        record = read_record(store, identity, messages, logger)
        if record is not None:
            bookmarks = BookmarkStore(record.bookmarks)
            removed = bookmarks.remove(bookmark_id)
            if removed:
                store.save(identity, replace(record, bookmarks=bookmarks.snapshot()))
    except Exception as exc:
        exit_with_command_error("bookmark-remove", exc)

    _echo_messages(messages)
    if removed:
        typer.echo(f"Removed bookmark {bookmark_id}.")
    else:
        typer.echo(f"No bookmark `{bookmark_id}`; nothing removed.")


@app.command("bookmark-rename")
def bookmark_rename_command(
    path: Annotated[Path, typer.Argument(help="Audiobook source path.")],
    bookmark_id: Annotated[str, typer.Argument(help="Bookmark id as printed by `bookmarks`.")],
    label: Annotated[str, typer.Argument(help="New label; an empty string clears it.")],
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
) -> None:
    """Change the label of a saved bookmark."""

    messages = StatusMessages()
    try:
        config = _load_config(config_file, state_dir)
        logger = _session_logger(False)
        identity = AudiobookIdentity.from_path(path)
        store = StateStore(config.state_dir, logger=logger)
        record = read_record(store, identity, messages, logger)
        bookmarks = BookmarkStore(record.bookmarks if record is not None else ())
        renamed = bookmarks.rename(bookmark_id, label)
        if record is not None:
            store.save(identity, replace(record, bookmarks=bookmarks.snapshot()))
    except Exception as exc:
        exit_with_command_error("bookmark-rename", exc)

    _echo_messages(messages)
    typer.echo(f"Renamed bookmark {renamed.bookmark_id}: {describe_bookmark(renamed)}")


@app.command("forget")
def forget_command(
    path: Annotated[Path, typer.Argument(help="Audiobook source path.")],
    config_file: ConfigOption = None,
    state_dir: StateDirOption = None,
) -> None:
    """Delete the saved session, bookmarks included, for an audiobook."""

    try:
        config = _load_config(config_file, state_dir)
        identity = AudiobookIdentity.from_path(path)
        deleted = StateStore(config.state_dir, logger=_session_logger(False)).delete(identity)
    except Exception as exc:
        exit_with_command_error("forget", exc)

    if deleted:
        typer.echo(f"Forgot saved session for `{identity.source_path}`.")
    else:
        typer.echo(f"No saved session for `{identity.source_path}`.")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
