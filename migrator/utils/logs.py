"""Logging setup for command-line runs."""

from __future__ import annotations

import logging
import pathlib
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


def configure_logging(level: str = "INFO", log_dir: pathlib.Path | str | None = "logs") -> None:
    """Log to the console and, when ``log_dir`` is set, to rotating files.

    ``error.log`` receives errors only; ``combined.log`` receives everything at
    ``level`` and above.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if log_dir is None:
        return
    path = pathlib.Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    for filename, handler_level in (("error.log", logging.ERROR), ("combined.log", logging.NOTSET)):
        handler = RotatingFileHandler(
            path / filename, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
