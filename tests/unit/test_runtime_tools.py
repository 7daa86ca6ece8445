"""Unit tests for deterministic runtime executable resolution."""

from __future__ import annotations

from pathlib import Path

from pytest import MonkeyPatch

from earmark import runtime_tools


def test_resolve_executable_prefers_bundled_bin_over_path(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Bundled `bin` executable should take precedence over PATH discovery."""

    bundled_bin = tmp_path / "bin"
    bundled_bin.mkdir(parents=True, exist_ok=True)
    bundled_tool = bundled_bin / "ffplay"
    bundled_tool.write_text("stub", encoding="utf-8")
    monkeypatch.setattr(runtime_tools, "_app_root", lambda: tmp_path)
    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: "/usr/bin/ffplay")

    resolved = runtime_tools.resolve_executable("ffplay")

    assert resolved == str(bundled_tool)


def test_resolve_executable_falls_back_to_path_when_not_bundled(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """PATH lookup should be used when no bundled executable exists."""

    monkeypatch.setattr(runtime_tools, "_app_root", lambda: tmp_path)
    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: "/usr/bin/ffprobe")

    assert runtime_tools.resolve_executable("ffprobe") == "/usr/bin/ffprobe"


def test_resolve_executable_keeps_explicit_paths_and_unknown_names(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Explicit paths pass through; unknown names are returned unchanged."""

    monkeypatch.setattr(runtime_tools, "_app_root", lambda: tmp_path)
    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: None)

    explicit = str(tmp_path / "tools" / "ffplay")
    assert runtime_tools.resolve_executable(explicit) == explicit
    assert runtime_tools.resolve_executable("ffplay") == "ffplay"
