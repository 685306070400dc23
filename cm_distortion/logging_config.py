"""
Logging Configuration
Sets up the package logger for scripts.
"""

import logging
import sys
from typing import Optional


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the 'cm_distortion' logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to also write the log to.
    """
    logger = logging.getLogger("cm_distortion")
    logger.setLevel(level)

    # Avoid duplicate handlers when called twice
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
