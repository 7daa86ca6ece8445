"""Domain exceptions for session bookkeeping and CLI diagnostics.

Every error carries the component (`stage`) where it was raised, a concise
detail message, and an optional hint. All of them are recoverable: callers
convert them into status messages rather than aborting a session.
"""

from __future__ import annotations


class EarmarkError(RuntimeError):
    """Base error raised by a specific session component."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a component-scoped error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class MetadataUnreadable(EarmarkError):
    """Raised when a source file cannot be introspected for chapters or tags."""

    def __init__(self, detail: str, hint: str | None = None) -> None:
        super().__init__(stage="catalog", detail=detail, hint=hint)


class InvalidPosition(EarmarkError):
    """Raised when a seek or bookmark target lies outside the addressed unit."""

    def __init__(self, detail: str, hint: str | None = None) -> None:
        super().__init__(stage="position", detail=detail, hint=hint)


class PersistedStateCorrupt(EarmarkError):
    """Raised when a saved session record is unreadable or has an unknown version."""

    def __init__(self, detail: str, hint: str | None = None) -> None:
        super().__init__(
            stage="persistence",
            detail=detail,
            hint=hint or "The record is ignored and the session starts fresh.",
        )


class EngineError(EarmarkError):
    """Raised when the external playback engine rejects or fails a command."""

    def __init__(self, detail: str, hint: str | None = None) -> None:
        super().__init__(stage="engine", detail=detail, hint=hint)
