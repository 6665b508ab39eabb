# src/taskboard/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

APP_LOGGER = "taskboard"

# Timer-driven components that log on every keystroke at DEBUG/INFO.
CHATTY_PREFIXES: tuple[str, ...] = ("taskboard.sync.", "taskboard.history.")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the interactive prompt readable:
    - app logs pass, except chatty prefixes which need WARNING+
    - 'py.warnings' and third-party loggers need ERROR+
    """

    def __init__(self, chatty: Iterable[str] = CHATTY_PREFIXES) -> None:
        super().__init__()
        self._chatty = tuple(chatty)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
            if name.startswith(self._chatty):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def parse_level(level: int | str, default: int = logging.INFO) -> int:
    """Accept 10 / "10" / "debug" / "DEBUG"; anything else -> `default`."""
    if isinstance(level, int):
        return level
    raw = str(level).strip()
    if raw.isdigit():
        return int(raw)
    value = logging.getLevelName(raw.upper())
    return value if isinstance(value, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskboard",
    app_name: str = APP_LOGGER,
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
) -> Path:
    """
    Configure root logging once, early in main():
    - stderr handler, filtered for interactive use
    - <log_dir>/<app_name>.log with everything at `file_level`

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{app_name}.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(parse_level(console_level))
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(parse_level(file_level, logging.DEBUG))
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # Request lines from the calendar client are noise even in the file.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file
