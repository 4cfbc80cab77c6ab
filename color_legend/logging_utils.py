from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "ColorLegend"
PROPAGATE_ENV_VAR = "COLOR_LEGEND_PROPAGATE_LOGS"
LOG_FILENAME = "color_legend.log"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _propagation_requested() -> bool:
    value = os.getenv(PROPAGATE_ENV_VAR)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def build_rotating_log_handler(
    log_dir: Path,
    *,
    retention: int,
    max_bytes: int,
    filename: str = LOG_FILENAME,
) -> RotatingFileHandler:
    """Rotating handler behind ``color_legend.log``; ``retention`` counts the live file plus backups."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / filename,
        maxBytes=max_bytes,
        backupCount=max(1, retention) - 1,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    *,
    log_dir: Optional[Path] = None,
    debug: bool = False,
    retention: int = 5,
    max_bytes: int = 512 * 1024,
) -> logging.Logger:
    """Set up the ``ColorLegend`` logger tree.

    Log records stay inside the engine's own handlers unless
    ``COLOR_LEGEND_PROPAGATE_LOGS`` is set, so a host application's root logger
    is not flooded with per-pass debug output.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = _propagation_requested()
    if log_dir is not None:
        target = (Path(log_dir) / LOG_FILENAME).resolve()
        for existing in logger.handlers:
            if isinstance(existing, RotatingFileHandler) and Path(existing.baseFilename).resolve() == target:
                return logger
        logger.addHandler(build_rotating_log_handler(Path(log_dir), retention=retention, max_bytes=max_bytes))
    return logger
