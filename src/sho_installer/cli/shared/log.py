"""Diagnostic logging setup.

User-facing output goes through the Rich console; loguru carries the
diagnostics (subprocess argv, exit codes, poll details) on stderr.
"""

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(verbose: bool = False) -> None:
    """Replace loguru's default sink with stderr.

    Args:
        verbose: Log DEBUG and above instead of WARNING and above
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if verbose else "WARNING",
        colorize=True,
    )
