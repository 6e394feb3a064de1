"""
Logging setup for the orchestrator

Every module logs under the ``vpn_orchestrator`` package logger; the CLI
configures that one logger from the ``logging`` section of config.yaml.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = 'vpn_orchestrator'

CONSOLE_FORMAT = '%(levelname)s %(name)s: %(message)s'
FILE_FORMAT = (
    '%(asctime)s - %(name)s - %(levelname)s - '
    '%(threadName)s %(funcName)s:%(lineno)d - %(message)s'
)

# Marks handlers installed here so reconfiguring replaces only those
_HANDLER_FLAG = '_vpn_orchestrator_handler'


def to_level(level: Union[int, str]) -> int:
    """Accept logging constants or their names in any case"""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger inside the package hierarchy

    Handlers and levels live on the package logger, so module loggers
    follow whatever ``configure_logging`` set up.
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + '.'):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    console_level: Union[int, str] = logging.WARNING
) -> logging.Logger:
    """
    Configure the package logger

    Args:
        level: Level of the package logger and the log file
        log_file: Optional file receiving every record at ``level``
        console_level: Threshold for records echoed to stderr, kept
            above INFO by default so log lines do not interleave with
            the CLI tables

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = to_level(level)
    console_level = to_level(console_level)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(max(level, console_level))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    setattr(console_handler, _HANDLER_FLAG, True)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        setattr(file_handler, _HANDLER_FLAG, True)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    return logger


def set_logging_level(level: Union[int, str]):
    """Change the package level at runtime, console threshold included"""
    level = to_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in logger.handlers:
        if getattr(handler, _HANDLER_FLAG, False):
            handler.setLevel(level)
