"""
Logging configuration for the pre-auth engine.

All modules log under the ``preauth`` namespace (``preauth.scoring``,
``preauth.lifecycle`` ...) so one handler on the root engine logger
covers every component.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "preauth"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger in the engine namespace.

    Args:
        name: Component name (``"scoring"`` becomes ``preauth.scoring``)

    Returns:
        Logger instance
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a stdout handler to the engine root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    return logger
