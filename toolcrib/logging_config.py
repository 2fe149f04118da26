import sys
from loguru import logger

from toolcrib.config import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Install the single stderr sink. Safe to call more than once."""
    global _configured
    log_level = (level or get_settings().log_level).upper()
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=LOG_FORMAT)
    _configured = True


def get_logger(name: str | None = None):
    if not _configured:
        setup_logging()
    if name:
        return logger.bind(name=name)
    return logger
