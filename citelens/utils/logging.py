"""Logging configuration for citelens."""
import logging
import sys
from typing import Optional

# Libraries that log every HTTP connection while styles and locales are fetched
NOISY_LOGGERS = ("urllib3", "charset_normalizer")


def setup_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    quiet_libraries: bool = True,
) -> None:
    """Configure logging for citelens.

    Args:
        level: Logging level (e.g., logging.INFO, logging.DEBUG)
        format_string: Custom format string for log messages
        log_file: Optional file path to write logs to
        quiet_libraries: Keep HTTP client loggers at WARNING or above
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # stderr, so CLI output on stdout stays clean
    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=format_string,
        handlers=handlers
    )

    if quiet_libraries:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Logger for a citelens module, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
