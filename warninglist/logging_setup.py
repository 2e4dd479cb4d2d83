"""Logging configuration for the warninglist engine."""

import logging
import sys
from typing import IO, Optional

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(debug: bool = False, stream: Optional[IO[str]] = None) -> logging.Logger:
    """
    Set up logging for the engine.

    Calling it again only adjusts the level, no second handler is added.

    Args:
        debug: Enable debug-level logging
        stream: Where to write log lines (default: stderr)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("warninglist")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    if not any(getattr(h, "_warninglist_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
        handler._warninglist_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger
