"""Logging configuration for the backhub CLI.

Log records go to a file when one is configured. Otherwise, when a live
display owns the terminal, they are printed above its block through the
display; without one they go to stderr.
"""

from __future__ import annotations

import logging
from pathlib import Path

from backhub.output import DisplayLogHandler, OutputManager

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    level: str = "WARNING",
    log_file: str | Path | None = None,
    display: OutputManager | None = None,
) -> None:
    """Configure root logging once for the process."""
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.WARNING

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            level=resolved,
            format=LOG_FORMAT,
            filename=str(log_path),
            filemode="a",
        )
    elif display is not None and display.console.is_terminal:
        logging.basicConfig(
            level=resolved,
            format=LOG_FORMAT,
            handlers=[DisplayLogHandler(display)],
        )
    else:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)

    # Quiet chatty transport loggers unless explicitly debugging
    if resolved > logging.DEBUG:
        logging.getLogger("dulwich").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
