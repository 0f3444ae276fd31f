"""Logger setup shared by the detector, the aggregator and the cron wrapper."""

from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import IO, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def setup_logger(
    name: str,
    log_file: Optional[Path] = None,
    *,
    stream: IO[str] = sys.stderr,
    level: int = logging.INFO,
) -> logging.Logger:
    """Attach the usual handlers to ``name`` once and return it.

    Child loggers (``observers.carrier_outage.probes`` etc.) propagate into
    whatever is configured here, so entry points call this with the
    ``observers`` namespace.
    """

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="midnight",
            interval=1,
            backupCount=14,
            encoding="utf-8",
            utc=True,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(stream)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    return logger
