"""Logging setup on top of loguru."""
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
)


def setup_logging(debug: bool = False) -> None:
    """Replace loguru's default sink with one that shows the bound module."""
    logger.remove()
    logger.configure(extra={"module": "robocast"})
    logger.add(
        sys.stderr,
        level="DEBUG" if debug else "INFO",
        format=LOG_FORMAT,
        backtrace=debug,
        diagnose=debug,
    )
