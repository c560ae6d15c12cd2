from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE = Path("/tmp/camlight.log")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Pass as extra= to keep a record out of the console (log file only)
QUIET = {"quiet": True}


class ConsoleFilter(logging.Filter):
    """Drops records logged with extra=QUIET."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "quiet", False)


def configure_logging(debug: bool = False, log_file: str | Path | None = LOG_FILE) -> None:
    """
    Console (stdout) gets INFO and above except quiet records. The log file
    gets everything at INFO, or DEBUG when debug is enabled.
    """
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.addFilter(ConsoleFilter())
    handlers: list[logging.Handler] = [console]

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
