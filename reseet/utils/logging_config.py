import logging
import os
import sys
from typing import Optional

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def resolve_level(value: str, default: int = logging.INFO) -> int:
    """Maps a level name such as 'debug' to its logging constant."""
    return LEVELS.get((value or "").strip().upper(), default)


def setup_logging(name: str = "reseet", level: Optional[int] = None) -> logging.Logger:
    """
    Sets up the project logger.

    Args:
        name: Name of the logger.
        level: Logging level. Defaults to RESEET_LOG_LEVEL, then INFO.

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers if already configured
    if logger.handlers:
        return logger

    if level is None:
        level = resolve_level(os.getenv("RESEET_LOG_LEVEL", ""))
    logger.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger

# Default logger for the project
logger = setup_logging()
