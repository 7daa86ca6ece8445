"""Interactive `play` runtime helpers.

This module isolates line-command parsing, the stdin reader thread, and the
session event loop from the command wiring layer.
"""

from __future__ import annotations

import queue
import threading
from typing import Callable, TextIO

from .models.datatypes import SessionView
from .parsing import normalize_optional_string, parse_position_text
from .session.orchestrator import CommandKind, ListeningSession, UserCommand

HELP_TEXT = """Commands:
  <enter> | p          toggle play/pause
  f [secs] | b [secs]  seek forward/back (default step)
  g <1h2m3s>           go to a position in the current chapter
  c <n>                go to chapter n
  n | prev             next/previous chapter (resumes where you left it)
  r                    back to the start of the current chapter
  fin                  mark the chapter finished and pause at the next
  ] | [                speed up/down
  x <rate>             set an exact speed, e.g. `x 1.4`
  + | -                volume up/down
  bm [label]           bookmark the current position
  m                    mark the current position
  bmm [label]          bookmark the marked position
  j <id> | rm <id>     jump to/remove a bookmark
  e <id> [label]       rename a bookmark
  u                    return to the position before the last jump
  d [text]             describe the current chapter (empty clears)
  s                    toggle antispoiler mode
  q                    save and quit"""

_SIMPLE_COMMANDS = {
    "p": CommandKind.TOGGLE_PLAY,
    "n": CommandKind.NEXT_CHAPTER,
    "next": CommandKind.NEXT_CHAPTER,
    "prev": CommandKind.PREVIOUS_CHAPTER,
    "r": CommandKind.RESET_CHAPTER,
    "fin": CommandKind.FINISH_CHAPTER,
    "]": CommandKind.SPEED_UP,
    "[": CommandKind.SPEED_DOWN,
    "+": CommandKind.VOLUME_UP,
    "-": CommandKind.VOLUME_DOWN,
    "m": CommandKind.MARK,
    "u": CommandKind.RESTORE_BEFORE_JUMP,
    "s": CommandKind.TOGGLE_ANTISPOILER,
    "q": CommandKind.QUIT,
    "quit": CommandKind.QUIT,
}

_TEXT_COMMANDS = {
    "bm": CommandKind.ADD_BOOKMARK,
    "bmm": CommandKind.BOOKMARK_AT_MARK,
    "j": CommandKind.JUMP_BOOKMARK,
    "rm": CommandKind.REMOVE_BOOKMARK,
    "e": CommandKind.RENAME_BOOKMARK,
    "d": CommandKind.DESCRIBE_CHAPTER,
}


def parse_command_line(line: str) -> UserCommand | str:
    """Parse one input line.

    Returns:
        A `UserCommand`, or a message to show instead (help text or a
        diagnostic for unrecognized input).
    """

    stripped = line.strip()
    if not stripped:
        return UserCommand(CommandKind.TOGGLE_PLAY)
    head, _, rest = stripped.partition(" ")
    head = head.lower()
    argument = normalize_optional_string(rest)

    if head in {"h", "help", "?"}:
        return HELP_TEXT
    if head in _SIMPLE_COMMANDS:
        return UserCommand(_SIMPLE_COMMANDS[head])
    if head in _TEXT_COMMANDS:
        return UserCommand(_TEXT_COMMANDS[head], argument)
    if head in {"f", "b"}:
        if argument is None:
            return UserCommand(CommandKind.SEEK_RELATIVE)
        amount_ms = parse_position_text(argument)
        if amount_ms is None:
            return f"Unrecognized seek amount `{argument}`."
        return UserCommand(CommandKind.SEEK_RELATIVE, amount_ms if head == "f" else -amount_ms)
    if head == "g":
        position = parse_position_text(argument or "")
        if position is None:
            return f"Unrecognized position `{argument or ''}`; use a form like `1h2m3s`."
        return UserCommand(CommandKind.SEEK_ABSOLUTE, position)
    if head == "c":
        if argument is None or not argument.isdigit() or int(argument) < 1:
            return "Chapter numbers start at 1."
        return UserCommand(CommandKind.SEEK_CHAPTER, int(argument) - 1)
    if head == "x":
        try:
            speed = float(argument or "")
        except ValueError:
            return f"Invalid input `{argument or ''}`; the speed must be a number."
        if not speed > 0:
            return "Couldn't set the speed; use a number greater than 0."
        return UserCommand(CommandKind.SET_SPEED, speed)
    return f"Unknown command `{stripped}`; type `help` for the list."


def start_input_reader(stream: TextIO, commands: queue.Queue) -> threading.Thread:
    """Parse lines from `stream` on a daemon thread into `commands`.

    End of input enqueues a quit command so the session always saves.
    """

    def _read() -> None:
        for line in stream:
            commands.put(parse_command_line(line))
        commands.put(UserCommand(CommandKind.QUIT))

    reader = threading.Thread(target=_read, name="earmark-input", daemon=True)
    reader.start()
    return reader


def run_session_loop(
    session: ListeningSession,
    commands: queue.Queue,
    tick_seconds: float,
    echo: Callable[[str], None],
    status_line: Callable[[SessionView], str],
) -> None:
    """Drain commands, poll the engine, and print messages until quit.

    The loop is the only caller of session mutations; the reader thread only
    enqueues parsed commands.
    """

    try:
        while not session.closed:
            try:
                item = commands.get(timeout=tick_seconds)
            except queue.Empty:
                item = None

            if isinstance(item, str):
                echo(item)
            elif item is not None and not session.handle(item):
                break
            session.tick()
            view = session.view()
            for message in view.messages:
                echo(message)
            if isinstance(item, UserCommand):
                echo(status_line(view))
    finally:
        session.close()
        for message in session.messages.drain():
            echo(message)
