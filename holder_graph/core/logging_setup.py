"""Loguru sink configuration used by the CLI entry points."""
import sys

from loguru import logger

from holder_graph.core.config import LoggingSettings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} - {level} - {name}:{line} - {message}"


def setup_logging(settings: LoggingSettings) -> None:
    """Replace the default sink with a console sink and an optional rotating file."""
    logger.remove()
    level = settings.level.upper()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)
    if settings.file:
        logger.add(
            settings.file,
            level=level,
            format=FILE_FORMAT,
            rotation=settings.rotation,
        )
    logger.info(f"Logging level set to {level}")
