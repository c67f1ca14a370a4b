"""Logging configuration for floatline with custom verbosity levels."""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

# Custom levels between the standard ones
CHANGES_LEVEL = 25  # Between INFO (20) and WARNING (30) - verbosity level 1
CHECKS_LEVEL = 15  # Between DEBUG (10) and INFO (20) - verbosity level 2

logging.addLevelName(CHANGES_LEVEL, "CHANGES")
logging.addLevelName(CHECKS_LEVEL, "CHECKS")

VERBOSITY_SILENT = 0  # Warnings and errors
VERBOSITY_CHANGES = 1  # Accepted moves, excluded projects
VERBOSITY_CHECKS = 2  # Candidate evaluation
VERBOSITY_DEBUG = 3  # Full algorithm details


class FloatlineLogger(logging.Logger):
    """Logger with semantic verbosity methods.

    - changes(): verbosity level 1 - schedule changes the engine commits to
    - checks(): verbosity level 2 - candidates considered and rejected
    - debug(): verbosity level 3 - pass-by-pass details
    """

    def changes(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log changes (verbosity level 1)."""
        if self.isEnabledFor(CHANGES_LEVEL):
            self._log(CHANGES_LEVEL, msg, args, **kwargs)

    def checks(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log checks (verbosity level 2)."""
        if self.isEnabledFor(CHECKS_LEVEL):
            self._log(CHECKS_LEVEL, msg, args, **kwargs)


def get_logger() -> FloatlineLogger:
    """Get the floatline logger instance (singleton)."""
    logging.setLoggerClass(FloatlineLogger)
    logger = logging.getLogger("floatline")
    assert isinstance(logger, FloatlineLogger)
    return logger


def setup_logger(verbosity: int, stream: TextIO | None = None) -> None:
    """Configure the floatline logger with a verbosity level.

    Can be called multiple times to reconfigure the logger.

    Args:
        verbosity: 0=silent (warnings only), 1=changes, 2=checks, 3=debug
        stream: Optional output stream (defaults to sys.stderr)
    """
    logger = get_logger()
    logger.handlers.clear()

    level_map = {
        VERBOSITY_SILENT: logging.WARNING,
        VERBOSITY_CHANGES: CHANGES_LEVEL,
        VERBOSITY_CHECKS: CHECKS_LEVEL,
        VERBOSITY_DEBUG: logging.DEBUG,
    }
    logger.setLevel(level_map.get(verbosity, logging.WARNING))

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def reset_logger() -> None:
    """Reset the logger to a clean state (used by tests)."""
    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True


def debug_enabled() -> bool:
    """Check if debug-level logging is enabled (verbosity >= 3)."""
    return get_logger().isEnabledFor(logging.DEBUG)
