"""Logging setup: stdlib loggers rendered through rich.

Call ``setup_logging()`` once at the application entry point; modules only
ask for a named logger:

    from reconciler.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Analyzing batch %s", batch_id)
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Return a module logger.

    Args:
        name: Logger name (typically __name__)
        level: Optional level override for this logger only
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Install a rich console handler on the root logger.

    Args:
        level: Default level; the LOG_LEVEL environment variable wins
        log_file: Optional path for a plain-text copy of the log
    """
    level = os.getenv("LOG_LEVEL", level).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    rich_handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))
    root_logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)
