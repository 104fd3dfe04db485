# -------------------- LOGGING UTILITIES --------------------
import logging

from landguard.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"


def create_logger(name: str, level=None):
    """Get configured logger instance"""
    logger = logging.getLogger(f"landguard.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(level or getattr(logging, LOG_LEVEL, logging.INFO))
    return logger
