from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_LOG_PATH = "/var/log/alpine-chroot-install.log"

_COLORS = {
    logging.ERROR: "\033[1;31m",
    logging.CRITICAL: "\033[1;31m",
    logging.WARNING: "\033[1;33m",
}
_RESET = "\033[0m"


class ConsoleFormatter(logging.Formatter):
    """Plain messages; warnings and errors get a colored level marker."""

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        color = _COLORS.get(record.levelno)
        if color is None:
            return msg
        return f"{color}{record.levelname}:{_RESET} {msg}"


def configure_logging(
    log_path: Optional[str] = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure logging.

    Every command and decision goes to the log file. When the requested path
    is not writable, a file in the working directory is used instead and the
    intended path is still reported.

    With log_path=None only the console handler is installed.

    Returns the actual file path being used, or "" without a file.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_alpine_chroot_configured", False):
        return getattr(logger, "_alpine_chroot_log_path", log_path)

    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    chosen_path = ""
    if log_path is not None:
        file_handler: logging.Handler
        try:
            Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            chosen_path = log_path
        except OSError:
            fallback = str(Path.cwd() / "alpine-chroot-install.log")
            file_handler = logging.FileHandler(fallback)
            chosen_path = fallback
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(ConsoleFormatter(fmt="%(message)s"))
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_alpine_chroot_configured", True)
    setattr(logger, "_alpine_chroot_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path or "-"
    )
    return chosen_path

