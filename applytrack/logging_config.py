"""Root logger setup for the applytrack scheduler and embedding services."""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from config.settings import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries whose INFO output drowns out search and enrichment progress
NOISY_LOGGERS = ("urllib3", "aiohttp", "sqlalchemy", "apscheduler")

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _file_handler(log_file: str, formatter: logging.Formatter) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> bool:
    """Install console and optional rotating file handlers on the root logger.

    Level and file default to the configured ``log_level`` and ``log_file``.
    When the root logger already has handlers (an embedding service set it
    up, or this ran before) nothing changes.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Path for the rotating file handler

    Returns:
        True if handlers were installed
    """
    root = logging.getLogger()
    if root.handlers:
        return False

    level = level or settings.log_level
    log_file = log_file or settings.log_file
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        root.addHandler(_file_handler(log_file, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return True
