"""Spoiler-safe chapter listing.

Units after the current one are masked to a placeholder and their ordinal;
neither their title text nor their duration ever reaches the output.
"""

from __future__ import annotations

from typing import Sequence

from ..models.datatypes import PlayableUnit
from ..parsing import format_position

MASK_PLACEHOLDER = "???"
MASKED_DURATION = "--"


def _is_masked(index: int, current_unit_index: int, enabled: bool) -> bool:
    return enabled and index > current_unit_index


def visible_titles(
    units: Sequence[PlayableUnit], current_unit_index: int, enabled: bool
) -> tuple[str, ...]:
    """Return display titles, masking units after the current one when enabled."""

    return tuple(
        f"{MASK_PLACEHOLDER} {unit.index + 1}"
        if _is_masked(unit.index, current_unit_index, enabled)
        else unit.title
        for unit in units
    )


def visible_rows(
    units: Sequence[PlayableUnit], current_unit_index: int, enabled: bool
) -> tuple[tuple[str, str], ...]:
    """Return `(title, duration text)` rows with the same masking rule."""

    titles = visible_titles(units, current_unit_index, enabled)
    rows: list[tuple[str, str]] = []
    for unit, title in zip(units, titles):
        if _is_masked(unit.index, current_unit_index, enabled) or unit.duration_ms is None:
            duration_text = MASKED_DURATION
        else:
            duration_text = format_position(unit.duration_ms)
        rows.append((title, duration_text))
    return tuple(rows)
