"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
session status lines, chapter listing rows, and bookmark rows.
"""

from __future__ import annotations

from typing import Mapping, NoReturn, Sequence

import typer

from .catalog.resolver import Catalog
from .errors import EarmarkError
from .models.datatypes import Bookmark, PersistedState, SessionView
from .parsing import format_position


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, EarmarkError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def format_status_line(view: SessionView) -> str:
    """Return a one-line summary of the current session view."""

    duration = format_position(view.duration_ms) if view.duration_ms is not None else "--"
    return (
        f"[{view.status.value}] {view.unit_index + 1}/{view.unit_count} {view.unit_title} "
        f"{format_position(view.offset_ms)} / {duration} "
        f"speed {view.speed:g}x vol {round(view.volume * 100)}%"
    )


def echo_catalog_summary(catalog: Catalog) -> None:
    """Print the book title, source kind, and any chapter fallback reasons."""

    typer.echo(f"Book: {catalog.title}")
    typer.echo(f"Source: {catalog.kind} ({len(catalog.units)} unit(s))")
    for reason in catalog.fallback_reasons:
        typer.echo(f"Chapter fallback reason: {reason}")


def echo_chapter_rows(
    rows: Sequence[tuple[str, str]],
    current_index: int,
    descriptions: Mapping[int, str] | None = None,
    antispoiler: bool = False,
) -> None:
    """Print numbered chapter rows, marking the current one with `*`.

    In antispoiler mode descriptions are printed only for chapters up to the
    current one.
    """

    notes = descriptions or {}
    for index, (title, duration_text) in enumerate(rows):
        marker = "*" if index == current_index else " "
        typer.echo(f"{marker} {index + 1}. {title} ({duration_text})")
        note = notes.get(index)
        if note and (not antispoiler or index <= current_index):
            typer.echo(f"      {note}")


def echo_bookmark_rows(bookmarks: Sequence[Bookmark], titles: Sequence[str]) -> None:
    """Print bookmark rows with their (possibly masked) chapter titles."""

    if not bookmarks:
        typer.echo("No bookmarks.")
        return
    for bookmark in bookmarks:
        title = titles[bookmark.unit_index] if bookmark.unit_index < len(titles) else "?"
        label = f' "{bookmark.label}"' if bookmark.label else ""
        typer.echo(
            f"{bookmark.bookmark_id}  {bookmark.unit_index + 1}. {title} "
            f"at {format_position(bookmark.offset_ms)}{label}"
        )


def echo_saved_state(record: PersistedState, unit_title: str) -> None:
    """Print the saved position and settings of one record."""

    typer.echo(f"Chapter: {record.unit_index + 1}. {unit_title}")
    typer.echo(f"Position: {format_position(record.offset_ms)}")
    typer.echo(f"Speed: {record.speed:g}x")
    typer.echo(f"Volume: {round(record.volume * 100)}%")
    typer.echo(f"Antispoiler: {'on' if record.antispoiler else 'off'}")
    typer.echo(f"Bookmarks: {len(record.bookmarks)}")
    if record.saved_at:
        typer.echo(f"Saved at: {record.saved_at}")
