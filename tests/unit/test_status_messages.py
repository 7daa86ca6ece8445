"""Unit tests for the status message queue."""

from __future__ import annotations

from earmark.session.messages import StatusMessages


def test_drain_returns_pending_in_order_and_empties_queue() -> None:
    """Messages are delivered once, in the order they were pushed."""

    messages = StatusMessages()
    messages.push("Speed 1.25x.")
    messages.push("Volume 55%.")

    assert len(messages) == 2
    assert messages.drain() == ("Speed 1.25x.", "Volume 55%.")
    assert messages.drain() == ()
    assert len(messages) == 0


def test_history_keeps_only_the_newest_delivered_messages() -> None:
    """Delivered messages move to a bounded history."""

    messages = StatusMessages(history_limit=2)
    for text in ("one", "two", "three"):
        messages.push(text)
    messages.push("pending")
    messages.drain()

    assert messages.history == ("three", "pending")
