"""
Logging configuration for migration runs.

Library modules only create loggers with logging.getLogger(__name__); the
invoking application decides where records go by calling configure_logging().
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PACKAGE_LOGGER = 'data_migrator'


def configure_logging(log_level: str = "WARNING",
                      log_file: Optional[Union[str, Path]] = None,
                      stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attach console (and optional file) handlers to the package logger.

    Existing handlers on the package logger are replaced so repeated calls do
    not duplicate output; the root logger is left untouched.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file that receives the same records
        stream: Console stream, defaults to sys.stdout

    Returns:
        The configured package logger
    """
    level = getattr(logging, log_level.upper(), logging.WARNING)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Remove any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    logger.debug(f"Logging initialized at {logging.getLevelName(level)}"
                 + (f", file={log_file}" if log_file else ""))
    return logger
