"""Shared parsing helpers for config values and human-readable positions."""

from __future__ import annotations


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def parse_position_text(value: str) -> int | None:
    """Parse an `XhYmZs` position expression into milliseconds.

    Each component is optional, components may appear in any order, and a
    trailing bare number is read as seconds (`"90"` is 90 seconds,
    `"1m30"` is 90 seconds).

    Args:
        value: User-entered position text such as `"1h2m3s"` or `"45s"`.

    Returns:
        Position in milliseconds, or `None` when the text contains anything
        other than digits and `h`/`m`/`s` markers.
    """

    text = normalize_optional_string(value)
    if text is None:
        return None

    total_seconds = 0
    number = ""
    for character in text.lower():
        if character.isdigit():
            number += character
            continue
        if character not in _UNIT_SECONDS or not number:
            return None
        total_seconds += int(number) * _UNIT_SECONDS[character]
        number = ""

    if number:
        total_seconds += int(number)
    return total_seconds * 1000


def format_position(position_ms: int) -> str:
    """Render milliseconds as a compact `1h2m3s` string, dropping leading zero units."""

    total_seconds = max(0, int(position_ms)) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"
