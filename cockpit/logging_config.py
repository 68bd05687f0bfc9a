"""Logging setup for cockpit.

All modules log through ``logging.getLogger(__name__)`` under the
``cockpit`` namespace; this module attaches the file handler once per
process. Stdout is left alone so the MCP stdio transport stays clean.
"""

import logging
import os
from datetime import date
from pathlib import Path
from typing import Optional, Union

from cockpit.utils import get_data_dir

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVEL_ENV = "COCKPIT_LOG_LEVEL"


def _resolve_level(level: Optional[Union[str, int]]) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or "INFO"
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        return logging.INFO
    return resolved


def get_log_dir() -> Path:
    return get_data_dir() / "logs"


def setup_cockpit_logging(
    level: Optional[Union[str, int]] = None, log_dir: Optional[Path] = None
) -> logging.Logger:
    """Configure the ``cockpit`` logger with a dated file handler.

    Args:
        level: Log level name or number. Falls back to ``COCKPIT_LOG_LEVEL``,
            then INFO. Names are case-insensitive; unknown names mean INFO.
        log_dir: Directory for log files (default ``<data dir>/logs``).

    Returns:
        The configured ``cockpit`` logger.
    """
    logger = logging.getLogger("cockpit")
    logger.setLevel(_resolve_level(level))

    log_dir = Path(log_dir) if log_dir is not None else get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"local-{date.today().isoformat()}.log"

    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_file:
            return logger

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)
    logger.debug(f"Logging to {log_file}")
    return logger
