"""Logging configuration for migsetup."""

import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

# Remove default handler
logger.remove()

# Format strings for different log levels
_info_format = "<level>{level: <7}</level> | {message}"
_debug_format = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <7}</level> | {message}"
_file_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <7} | {message}"


def default_log_path() -> Path:
    """Timestamped run log in the home directory (survives Cloud Shell disconnects)."""
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path.home() / f"migsetup-{stamp}.log"


def configure_logging(verbose: bool = False, log_file: Path | str | None = None) -> None:
    """Configure logging based on verbosity.

    Args:
        verbose: If True, show DEBUG level with timestamps. If False, show INFO and above.
        log_file: Optional path of a persistent run log. Always written at DEBUG level.
    """
    logger.remove()
    if verbose:
        logger.add(
            sys.stderr,
            format=_debug_format,
            level="DEBUG",
        )
    else:
        logger.add(sys.stderr, format=_info_format, level="INFO")

    if log_file is not None:
        logger.add(str(log_file), format=_file_format, level="DEBUG", encoding="utf-8")


# Export logger for use in other modules
__all__ = ["logger", "configure_logging", "default_log_path"]
