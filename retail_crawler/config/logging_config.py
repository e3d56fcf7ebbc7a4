# retail_crawler/config/logging_config.py

"""Run-scoped logging for the crawler.

One file per process under ``logs/`` (``run_YYYYmmdd_HHMMSS.log``) gets
every ``retail_crawler.*`` record at DEBUG, tagged with the worker thread
so concurrent crawls can be told apart. Stderr only shows warnings unless
the CLI asks for more.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from retail_crawler.config.settings import Settings

ROOT_LOGGER = "retail_crawler"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(threadName)-12s | %(name)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def current_log_file() -> Path | None:
    """Path of the run file the crawler logger writes to, if configured."""
    for handler in logging.getLogger(ROOT_LOGGER).handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def _file_handler(log_file: Path) -> logging.Handler:
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    return handler


def setup_logging(
    logs_dir: Path | None = None,
    console_level: int = logging.WARNING,
) -> Path:
    """Attach the run file and stderr handlers to the crawler logger.

    Safe to call more than once: later calls keep the handlers already
    attached and return the file they write to. Only *console_level* is
    updated, so ``--verbose`` still takes effect after an earlier setup.
    """
    crawler_logger = logging.getLogger(ROOT_LOGGER)
    crawler_logger.setLevel(logging.DEBUG)

    existing = current_log_file()
    if existing is not None:
        for handler in crawler_logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(console_level)
        return existing

    logs_dir = logs_dir or Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    crawler_logger.addHandler(_file_handler(log_file))
    crawler_logger.addHandler(_console_handler(console_level))
    crawler_logger.debug("[logging] Writing run log to %s", log_file)
    return log_file
