"""
Logging setup for Print Emporium.

Page counting runs on one thread per uploaded file and the catalog reloads
on its own thread, so every record carries the name of the thread that
wrote it. Worker threads rename themselves with set_thread_name() before
logging anything.

Handlers:
    - stdout, always
    - logs/print_emporium.log, rotating (production)
    - logs/print_emporium_error.log, ERROR and above (production)

Record layout:
    2026-10-17 10:15:30 [INFO    ] [MainThread] print_emporium.app - Starting Print Emporium
    2026-10-17 10:15:31 [DEBUG   ] [Catalog] print_emporium.services.catalog_service - Catalog reloaded
    2026-10-17 10:15:32 [INFO    ] [File-a1b2c3d4] print_emporium.file.a1b2c3d4 - 12 pages

Usage:
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.DEBUG, enable_file_logging=False)
    logger = get_logger(__name__)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "print_emporium"

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rotation: 10 MB per file, 5 backups
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


class ThreadContextFilter(logging.Filter):
    """Stamp thread_name and thread_id on every record (never filters anything out)."""

    def filter(self, record: logging.LogRecord) -> bool:
        thread = threading.current_thread()
        record.thread_name = thread.name
        record.thread_id = threading.get_ident()
        return True


def _attach(
    logger: logging.Logger,
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
    context: logging.Filter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(context)
    logger.addHandler(handler)


def _rotating(path: Path) -> RotatingFileHandler:
    return RotatingFileHandler(
        filename=path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )


def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the application logger tree.

    Calling it again replaces the handlers, so create_app() may run more
    than once in a process (tests).

    Args:
        app_name: Root of the logger namespace
        log_level: Minimum level for stdout and the main log file
        log_dir: Log file directory (default: logs/ next to this file)
        enable_file_logging: Add the rotating file handlers

    Returns:
        The configured application logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    context = ThreadContextFilter()

    _attach(logger, logging.StreamHandler(sys.stdout), log_level, formatter, context)

    if enable_file_logging:
        log_dir = log_dir or Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        main_log = log_dir / f"{app_name}.log"
        _attach(logger, _rotating(main_log), log_level, formatter, context)
        _attach(logger, _rotating(log_dir / f"{app_name}_error.log"), logging.ERROR, formatter, context)
        logger.info(f"File logging enabled: {main_log}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the application namespace.

    get_logger("services.order_service") -> "print_emporium.services.order_service"
    """
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def get_file_logger(file_id: str) -> logging.Logger:
    """Logger for one page-count thread, named by the first 8 chars of the file id."""
    return logging.getLogger(f"{APP_LOGGER_NAME}.file.{file_id[:8]}")


def set_thread_name(name: str) -> None:
    """Rename the current thread ("Catalog", "File-a1b2c3d4") for the [thread_name] field."""
    threading.current_thread().name = name
