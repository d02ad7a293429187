"""Console logging for runs: framework messages and remote task output."""

import logging
import sys
from typing import Optional
from pathlib import Path

DEFAULT_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'
TIME_FORMAT = '%H:%M:%S'

# Remote console lines are printed as-is
TASK_OUTPUT_LOGGER = 'task_output'
TASK_OUTPUT_FORMAT = '%(message)s'


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logger(
    name: str,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: str = DEFAULT_FORMAT,
    propagate: bool = True
) -> logging.Logger:
    """
    (Re)configure ``name`` to write to stdout and optionally to ``log_file``.

    Any handlers already on the logger are replaced.

    Args:
        name: Logger name
        level: Level for the logger and each handler
        log_file: Optional file that receives the same records
        format_string: Record format
        propagate: Whether records also reach ancestor loggers
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = propagate
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(format_string, datefmt=TIME_FORMAT)
    _attach(logger, logging.StreamHandler(sys.stdout), level, formatter)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _attach(logger, logging.FileHandler(log_file, encoding='utf-8'), level, formatter)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger, configured with the default console format on first use."""
    logger = logging.getLogger(name)
    return logger if logger.handlers else setup_logger(name)


def get_task_output_logger() -> logging.Logger:
    """Logger that prints remote task output lines without decoration."""
    logger = logging.getLogger(TASK_OUTPUT_LOGGER)
    if not logger.handlers:
        setup_logger(TASK_OUTPUT_LOGGER, format_string=TASK_OUTPUT_FORMAT, propagate=False)
    return logger


def configure_levels(verbose: bool = False, quiet: bool = False) -> int:
    """Apply one level to every logger already created by ``get_logger``."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    for logger in list(logging.Logger.manager.loggerDict.values()):
        if not isinstance(logger, logging.Logger) or not logger.handlers:
            continue
        # Task output stays visible unless quiet
        if logger.name == TASK_OUTPUT_LOGGER and not quiet:
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
    return level


def flush_all() -> None:
    """Flush every handler; used right before a hard process exit."""
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger, logging.Logger):
            for handler in logger.handlers:
                handler.flush()
    sys.stdout.flush()
    sys.stderr.flush()
