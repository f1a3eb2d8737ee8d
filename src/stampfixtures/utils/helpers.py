"""
Logging setup for scripts and notebooks that build fixtures.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Route ``stampfixtures`` log records to stderr at ``level``.

    The package logger level is set even when the root logger already has
    handlers (pytest, Jupyter), where ``basicConfig`` does nothing.

    Parameters
    ----------
    level : str
        DEBUG shows per-band calibration and per-row details; INFO shows file
        loads and assembled datasets.

    Returns
    -------
    logging.Logger
        The package logger.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown logging level: {level}")

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    package_logger = logging.getLogger("stampfixtures")
    package_logger.setLevel(numeric_level)
    return package_logger
