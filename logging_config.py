"""
Logging Configuration

Scripts set up logging once through configure_logging(); library modules
under orbit_determination only call logging.getLogger(__name__) and never
install handlers themselves.

The level may be given as a logging constant, as a level name, or left to
the OD_LOG_LEVEL environment variable (INFO when unset).

Usage:
    from logging_config import configure_logging, get_logger

    configure_logging("debug")
    logger = get_logger(__name__)
    logger.info("Preliminary orbit determined")
"""

import logging
import os
import sys
from typing import Iterable, Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Environment variable consulted when no level is passed
LOG_LEVEL_ENV = "OD_LOG_LEVEL"

# Third-party loggers held at WARNING so debug runs stay readable
QUIET_LOGGERS = ("matplotlib",)


def resolve_level(level: Union[int, str, None] = None) -> int:
    """
    Turn a level given as an int, a name or None into a logging level.

    Raises:
        ValueError: Unknown level name
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def configure_logging(level: Union[int, str, None] = None, log_file: Optional[str] = None,
                      quiet_loggers: Iterable[str] = QUIET_LOGGERS) -> int:
    """
    Configure the root logger, replacing any handlers installed earlier.

    Parameters
    ----------
    level : int, str or None
        Logging level or level name; None reads OD_LOG_LEVEL
    log_file : str, optional
        Also write records to this file
    quiet_loggers : iterable of str
        Logger names limited to WARNING

    Returns
    -------
    int
        The level applied to the root logger
    """
    resolved = resolve_level(level)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
    return resolved


def get_logger(name: str) -> logging.Logger:
    """Logger for a script or module, typically get_logger(__name__)."""
    return logging.getLogger(name)
