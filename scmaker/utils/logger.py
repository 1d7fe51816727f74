"""Logging setup driven by the ``logging`` section of the configuration."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, Optional

from scmaker.errors import ConfigError

LOGGER_NAME = "scmaker"
LINE_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"

# rotation defaults, overridable with logging.max_bytes / logging.backup_count
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3


def _level(value: Any) -> int:
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ConfigError("logging.level", f"unknown level {value!r}")
    return level


def setup_logger(cfg: Optional[Mapping[str, Any]] = None, name: str = LOGGER_NAME) -> logging.Logger:
    """Attach console (and optional rotating file) handlers to the *name* logger.

    *cfg* is the ``logging`` section: ``level``, ``path``, and the optional
    ``max_bytes`` / ``backup_count`` of the file handler.  A logger that
    already has handlers is returned untouched, so hosts that configure
    logging themselves keep their setup.
    """
    cfg = cfg or {}
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(_level(cfg.get("level") or "INFO"))
    formatter = logging.Formatter(fmt=LINE_FMT, datefmt=DATE_FMT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if cfg.get("path"):
        path = Path(cfg["path"])
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(cfg.get("max_bytes", MAX_BYTES)),
            backupCount=int(cfg.get("backup_count", BACKUP_COUNT)),
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging at %s to console%s", logging.getLevelName(logger.level),
                 f" and {cfg['path']}" if cfg.get("path") else "")
    return logger


def get_child_logger(parent: Optional[logging.Logger], name: str) -> logging.Logger:
    """Namespace *name* under *parent*, or under ``scmaker`` when there is none."""
    if parent is None:
        parent = logging.getLogger(LOGGER_NAME)
    return parent.getChild(name)
