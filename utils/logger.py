"""
Logging configuration for the Proximity Resolver.

Everything logs under the ``proximity`` logger. The console shows INFO-level
progress (one line per strategy and page), while the log file keeps the DEBUG
detail: skipped geometries, dedup field detection and the raw urllib3 request
lines for each paginated query.

Functions:
    setup_logging: Initialize logging handlers and return log file path
    get_logger: Get a logger instance for a specific module

Example:
    >>> from utils.logger import setup_logging, get_logger
    >>> log_file = setup_logging()
    >>> logger = get_logger(__name__)
    >>> logger.info("Resolving layers")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = 'proximity'
DEFAULT_LOG_DIR = Path(__file__).parent.parent / 'logs'

CONSOLE_FORMAT = '%(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# requests logs each HTTP call through urllib3; only the file gets those lines
HTTP_LOGGER_NAME = 'urllib3.connectionpool'


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    handler = logging.FileHandler(log_file, encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    return handler


def _replace_handlers(logger: logging.Logger, *handlers: logging.Handler):
    for old in list(logger.handlers):
        old.close()
        logger.removeHandler(old)
    for handler in handlers:
        logger.addHandler(handler)


def setup_logging(log_dir: Optional[Path] = None, console: bool = True) -> Path:
    """
    Setup logging to console and file.

    Safe to call more than once: previous handlers are closed and replaced.

    Parameters:
    -----------
    log_dir : Optional[Path]
        Directory for log files. Defaults to PROJECT_ROOT/logs
    console : bool
        Attach the stdout handler (default: True)

    Returns:
    --------
    Path
        Path to the created log file
    """
    log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"proximity_{datetime.now():%Y%m%d_%H%M%S}.log"

    file_handler = _file_handler(log_file)
    handlers = [_console_handler(), file_handler] if console else [file_handler]

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    _replace_handlers(logger, *handlers)

    http_logger = logging.getLogger(HTTP_LOGGER_NAME)
    http_logger.setLevel(logging.DEBUG)
    http_logger.propagate = False
    _replace_handlers(http_logger, file_handler)

    logger.debug(f"Logging initialized: {log_file}")

    return log_file


def get_logger(name: str) -> logging.Logger:
    """Return the ``proximity.<name>`` logger for a module (pass ``__name__``)."""
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
