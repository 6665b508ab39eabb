# src/taskboard/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the board, loads tasks, then runs the console
REPL until /exit, EOF or Ctrl+C. Pending autosave edits are flushed on the
way out.
"""

from __future__ import annotations

import asyncio
import logging

from ..board.board import TaskBoard
from ..cli.bootstrap import create_board
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..errors import TaskBoardError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(board: TaskBoard) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await board.close()
    except Exception:
        logger.exception("Failed to flush board state on shutdown.")

    calendar = board.calendar
    aclose = getattr(calendar, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("Calendar client close failed.", exc_info=True)

    # TaskStore uses short-lived sqlite connections per call; no explicit close required.


async def _run(board: TaskBoard) -> None:
    try:
        await board.load()
    except TaskBoardError:
        logger.exception("Could not load tasks.")
        return

    try:
        await run_console_loop(board)
    finally:
        await _shutdown(board)


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.data_dir, app_name=settings.app_name, console_level=settings.log_level)

    logger.info("Starting %s (log file %s)...", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    board = create_board(settings=settings)

    try:
        asyncio.run(_run(board))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
