"""Unit tests for shared config and position parsing helpers."""

import pytest

from earmark.parsing import (
    format_position,
    normalize_optional_string,
    parse_permissive_boolean,
    parse_position_text,
)


def test_normalize_optional_string_handles_blank_values() -> None:
    """Normalization should return `None` for `None` and blank textual values."""

    assert normalize_optional_string(None) is None
    assert normalize_optional_string("") is None
    assert normalize_optional_string("   ") is None


def test_normalize_optional_string_strips_non_blank_values() -> None:
    """Normalization should return stripped content for non-empty values."""

    assert normalize_optional_string("  value  ") == "value"
    assert normalize_optional_string(42) == "42"


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("TrUe", True),
        ("  ON ", True),
        ("YeS", True),
        ("FALSE", False),
        (" oFf ", False),
        ("nO", False),
    ],
)
def test_parse_permissive_boolean_accepts_mixed_case_tokens(
    token: str, expected: bool
) -> None:
    """Permissive parsing should accept valid tokens case-insensitively."""

    assert parse_permissive_boolean(token) is expected


@pytest.mark.parametrize("value", ["", "   ", "maybe", "2", object()])
def test_parse_permissive_boolean_returns_none_for_invalid_tokens(value: object) -> None:
    """Permissive parsing should return `None` for invalid or blank inputs."""

    assert parse_permissive_boolean(value) is None


@pytest.mark.parametrize(
    ("text", "expected_ms"),
    [
        ("1h2m3s", 3_723_000),
        ("45s", 45_000),
        ("90", 90_000),
        ("1m30", 90_000),
        ("2H", 7_200_000),
        ("0s", 0),
        (" 5m ", 300_000),
    ],
)
def test_parse_position_text_accepts_unit_expressions(text: str, expected_ms: int) -> None:
    """Position parsing should sum hour/minute/second parts into milliseconds."""

    assert parse_position_text(text) == expected_ms


@pytest.mark.parametrize("text", ["", "   ", "h", "1x", "1:30", "-5s", "m5"])
def test_parse_position_text_rejects_malformed_input(text: str) -> None:
    """Anything other than digits followed by `h`/`m`/`s` markers is rejected."""

    assert parse_position_text(text) is None


@pytest.mark.parametrize(
    ("position_ms", "expected"),
    [
        (0, "0s"),
        (7_999, "7s"),
        (61_000, "1m1s"),
        (3_600_000, "1h0m0s"),
        (8_217_000, "2h16m57s"),
        (-5, "0s"),
    ],
)
def test_format_position_drops_leading_zero_units(position_ms: int, expected: str) -> None:
    """Formatting should floor to whole seconds and omit leading zero units."""

    assert format_position(position_ms) == expected
