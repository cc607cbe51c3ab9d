"""
Logging Module.

Every logger in the package hangs off a single application logger named
``invoice_pipeline`` so the CLI (or an embedding service) configures
console and file output once and each stage module just calls
get_logger(__name__).

Log lines emitted while a document is being processed carry the short
run id of that document, via RunLoggerAdapter, so interleaved batch
output can be told apart:

    12:00:01 | INFO     | invoice_pipeline.pipeline | [run 3f2a9c1d] status=extracted_only

Author: ML Engineering Team
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING

import colorama
from colorama import Fore, Style

if TYPE_CHECKING:
    from config import ConfigurationManager

colorama.init()

ROOT_LOGGER_NAME = "invoice_pipeline"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024

LEVEL_COLORS = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}


class ColoredFormatter(logging.Formatter):
    """Console formatter that paints each line in its level's color."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return line
        return f"{color}{line}{Style.RESET_ALL}"


class RunLoggerAdapter(logging.LoggerAdapter):
    """
    Prefix messages with the run id of the document being processed.

    The full id is also attached to the record as ``run_id`` so a custom
    format string (or a file handler parsed later) can use it.
    """

    def __init__(self, logger: logging.Logger, run_id: str):
        super().__init__(logger, {'run_id': run_id})

    @property
    def short_id(self) -> str:
        return self.extra['run_id'][:8]

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {}).update(self.extra)
        return f"[run {self.short_id}] {msg}", kwargs


def _resolve_level(level: str) -> int:
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def _build_handlers(
    log_format: str,
    date_format: str,
    colorize: bool,
    log_file: Optional[str],
    max_bytes: int,
    backup_count: int
) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    formatter_cls = ColoredFormatter if colorize else logging.Formatter
    console.setFormatter(formatter_cls(log_format, datefmt=date_format))
    handlers: List[logging.Handler] = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
        )
        # Files never get ANSI codes.
        rotating.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        handlers.append(rotating)

    return handlers


def setup_logger(
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = 5,
    colorize: bool = True
) -> logging.Logger:
    """
    (Re)configure the application logger.

    Calling it again replaces the previous handlers, so tests and the CLI
    can reconfigure freely. Records do not propagate to the Python root
    logger.

    Args:
        level: Level name; unknown names fall back to INFO.
        log_format: logging format string.
        date_format: strftime format for %(asctime)s.
        log_file: Rotating log file; no file output when None.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        colorize: Color console output by level.

    Returns:
        The ``invoice_pipeline`` logger.
    """
    numeric_level = _resolve_level(level)

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(numeric_level)
    app_logger.propagate = False

    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    for handler in _build_handlers(
        log_format or DEFAULT_FORMAT,
        date_format or DEFAULT_DATE_FORMAT,
        colorize,
        log_file,
        max_bytes,
        backup_count,
    ):
        handler.setLevel(numeric_level)
        app_logger.addHandler(handler)

    app_logger.debug(f"Logging configured at {logging.getLevelName(numeric_level)}")
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the application logger."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def run_logger(logger: logging.Logger, run_id: str) -> RunLoggerAdapter:
    """Bind `logger` to one pipeline run."""
    return RunLoggerAdapter(logger, run_id)


def setup_logger_from_config(config: "ConfigurationManager") -> logging.Logger:
    """
    Configure logging from the ``logging`` section of `config`.
    """
    log_file = config.get("logging.file.path") if config.get("logging.file.enabled", False) else None

    return setup_logger(
        level=config.get("logging.level", "INFO"),
        log_format=config.get("logging.format"),
        date_format=config.get("logging.date_format"),
        log_file=log_file,
        max_bytes=config.get("logging.file.max_bytes", DEFAULT_MAX_BYTES),
        backup_count=config.get("logging.file.backup_count", 5),
        colorize=config.get("logging.console.colorize", True),
    )
