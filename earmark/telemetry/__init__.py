"""Telemetry and observability helpers.

This package emits deterministic session events for auditing resume behavior.
"""

from .logger import SessionLogger

__all__ = ["SessionLogger"]
