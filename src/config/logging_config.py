# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
JSON logging for the retrieval service.

Each module calls ``setup_logger(__name__)``. Records are emitted as one JSON
object per line. LOG_STREAM selects stdout (API, default) or stderr (CLI, so
logs never interleave with the printed passages).
"""

import logging
import os
import sys
from typing import Optional, TextIO

from pythonjsonlogger import jsonlogger

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _log_stream() -> TextIO:
    return sys.stderr if os.getenv("LOG_STREAM", "stdout").strip().lower() == "stderr" else sys.stdout


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Create and configure a logger with JSON output.

    Args:
        name: Logger name (``__name__`` of the calling module)
        level: Logging level name. Defaults to LOG_LEVEL env var or INFO

    Returns:
        Configured logger. Calling again for the same name reuses its handler.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(_log_stream())
        handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(handler)
        # Kept off the root handler uvicorn installs.
        logger.propagate = False

    logger.setLevel(getattr(logging, level, logging.INFO))
    return logger
