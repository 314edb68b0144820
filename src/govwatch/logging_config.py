"""Logging setup for GovWatch.

All modules log under the ``govwatch`` namespace through :func:`get_logger`.
The CLI routes that tree to a log file and, optionally, stdout. Per-run
scrape diagnostics (``debug_logs/latest.log``) are kept separately by
:mod:`govwatch.diagnostics`.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

ROOT_LOGGER_NAME = "govwatch"
DEFAULT_LOG_PATH = Path("logs") / "govwatch.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def reset_logging(logger: Optional[logging.Logger] = None) -> None:
    """Close and detach every handler installed on ``logger``."""
    logger = logger or logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def setup_logging(
    log_file: Optional[Union[str, Path]] = None,
    *,
    level: int = logging.INFO,
    console: bool = True,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """Route the ``govwatch`` logger tree to ``log_file`` and stdout.

    Calling it again replaces the handlers of the previous call, so the CLI
    and tests can reconfigure freely.

    Args:
        log_file: Log file path (default: logs/govwatch.log)
        level: Logging level (default: INFO)
        console: Also log to stdout
        format_string: Custom format string

    Returns:
        The configured ``govwatch`` root logger.
    """
    path = Path(log_file) if log_file else DEFAULT_LOG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    handlers: List[logging.Handler] = [logging.FileHandler(path, encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    formatter = logging.Formatter(format_string or LOG_FORMAT, datefmt=DATE_FORMAT)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    reset_logging(logger)
    logger.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False

    logger.debug(f"Logging to {path}")
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
