"""Bulk spirits ledger: gauging conversions and a workbook-backed container log.

Importing the package configures the ``spirits_ledger`` logger once. Records
go to ``.logs/spirits_ledger.log`` at the project root and, from warning
level up, to stderr. Set ``SPIRITS_LEDGER_LOG_LEVEL`` (``DEBUG``, ``INFO``,
...) to change the file handler's threshold.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / ".logs"
LOG_FILE = LOG_DIR / "spirits_ledger.log"
LOG_LEVEL_ENV = "SPIRITS_LEDGER_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _resolve_level(raw: str | None, default: int = logging.INFO) -> int:
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def _configure_logging() -> logging.Logger:
    """Attach the rotating file handler and the stderr handler, once."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    file_level = _resolve_level(os.environ.get(LOG_LEVEL_ENV))
    logger.setLevel(min(file_level, logging.WARNING))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        ledger_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        print(f"Warning: ledger log file '{LOG_FILE}' is unavailable: {exc}", file=sys.stderr)
    else:
        ledger_handler.setLevel(file_level)
        ledger_handler.setFormatter(formatter)
        logger.addHandler(ledger_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    return logger


log = _configure_logging()
log.debug("Logging ready for spirits_ledger %s", __version__)
