"""
Centralized logging for the data operations backend.

Level-based logging on top of Python's built-in logging module.

Usage:
    from dataops.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Applied %s (%d rows)", name, len(rows))
    logger.warning("Operation %s failed: %s", name, err)
"""

import logging
import sys

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the backend.

    Call once at startup (create_app). Subsequent calls are no-ops.
    """
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name (typically ``__name__``)."""
    return logging.getLogger(name)
