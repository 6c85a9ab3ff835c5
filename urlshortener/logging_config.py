"""Logger setup shared by the application and the background sweeper."""

import logging

__all__ = ["LOGGER_NAME", "setup_logger"]

LOGGER_NAME = "urlshortener"


def setup_logger(level: str = "INFO") -> logging.Logger:
    """Configure the ``urlshortener`` logger once and return it."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
