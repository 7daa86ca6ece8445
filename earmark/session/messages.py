"""User-visible status messages produced by session operations."""

from __future__ import annotations

from collections import deque


class StatusMessages:
    """FIFO of pending messages plus a bounded history of delivered ones."""

    def __init__(self, history_limit: int = 100) -> None:
        self._pending: deque[str] = deque()
        self._history: deque[str] = deque(maxlen=history_limit)

    def push(self, message: str) -> None:
        """Queue a message for the next view."""

        self._pending.append(message)

    def drain(self) -> tuple[str, ...]:
        """Return pending messages in arrival order and move them to history."""

        drained = tuple(self._pending)
        self._pending.clear()
        self._history.extend(drained)
        return drained

    @property
    def history(self) -> tuple[str, ...]:
        """Delivered messages, oldest first."""

        return tuple(self._history)

    def __len__(self) -> int:
        return len(self._pending)
