# src/taskboard/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..board.board import NoticeLevel, TaskBoard
from ..cli.commands import CommandContext
from ..cli.commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class _NoticePrinter:
    """Prints notices raised since the previous command (errors, undo hints)."""

    def __init__(self) -> None:
        self._last_seen = 0

    def flush(self, board: TaskBoard) -> None:
        for notice in board.notices:
            if notice.id <= self._last_seen:
                continue
            self._last_seen = notice.id
            if notice.level == NoticeLevel.ERROR:
                _print_ts(f"[!] {notice.message}")
            elif notice.undoable:
                _print_ts(f"[i] {notice.message} (/undo to revert)")
            else:
                _print_ts(f"[i] {notice.message}")


async def run_console_loop(board: TaskBoard) -> None:
    """
    Interactive REPL. Input is read in a worker thread so autosave and
    calendar timers keep firing on the event loop while the prompt waits.
    """
    logger.info("Console connector started (%d task(s)).", len(board.tasks))
    _print_ts("[CONSOLE] Type /help for commands, /list to see the board, /exit to quit.\n")

    ctx = CommandContext(board=board)
    notices = _NoticePrinter()

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> ")).strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            notices.flush(board)
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            # Plain text is a shortcut for /add.
            user_input = f"/add {user_input}"

        try:
            response = await command_registry.handle(ctx, user_input, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is not None:
            _print_ts(response)
        notices.flush(board)

    logger.info("Console connector finished.")
