"""Logging configuration."""
import logging
from pathlib import Path

from rich.logging import RichHandler

LOGGER_NAME = "slamonitor"


def setup_logging(level="INFO", log_file=None):
    """Attach a rich console handler (and an optional file handler) to the app logger.

    Safe to call more than once: later calls only change the level.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(numeric_level)

    if app_logger.handlers:
        return app_logger

    app_logger.addHandler(RichHandler(level=numeric_level, rich_tracebacks=True, markup=False))
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        app_logger.addHandler(file_handler)
    return app_logger
