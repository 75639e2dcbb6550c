"""Console logging for the command line.

Library modules only create named loggers
(``logging.getLogger("paris_trees.<package>.<module>")``); handlers are
attached here, once, by ``python -m paris_trees``.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: int = logging.INFO, log_file: str | None = None) -> logging.Logger:
    """Configure the ``paris_trees`` logger with a stdout handler.

    Existing handlers are removed so repeated calls do not duplicate lines.

    Args:
        level: Logging level (e.g. ``logging.DEBUG``).
        log_file: Optional path of a file receiving the same records.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger("paris_trees")
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
