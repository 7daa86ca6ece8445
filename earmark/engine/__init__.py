"""Playback engine adapters."""

from .ffplay import FfplayEngine, atempo_filter

__all__ = ["FfplayEngine", "atempo_filter"]
