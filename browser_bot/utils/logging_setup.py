"""Root logger configuration: console plus daily-rotating files."""

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

from browser_bot.config import LOG_DIR, LOG_LEVEL, LOG_MAX_FILES, LOG_TO_FILE

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic")


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[str] = None,
    to_file: Optional[bool] = None,
    backup_count: int = LOG_MAX_FILES,
) -> logging.Logger:
    """
    Configure the root logger once per process.

    Console output is always on. Unless disabled, ``combined.log`` (all levels)
    and ``error.log`` (ERROR and above) rotate at midnight and keep
    ``backup_count`` days.
    """
    level_name = (level or LOG_LEVEL).upper()
    log_dir = log_dir or LOG_DIR
    to_file = LOG_TO_FILE if to_file is None else to_file

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Avoid adding handlers multiple times
    if getattr(root, "_browser_bot_configured", False):
        return root

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if to_file:
        os.makedirs(log_dir, exist_ok=True)

        combined_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, "combined.log"), when="midnight", backupCount=backup_count, encoding="utf-8"
        )
        combined_handler.setFormatter(formatter)
        root.addHandler(combined_handler)

        error_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, "error.log"), when="midnight", backupCount=backup_count, encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root._browser_bot_configured = True
    return root


def reset_logging() -> None:
    """Remove and close the handlers installed by setup_logging."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root._browser_bot_configured = False
