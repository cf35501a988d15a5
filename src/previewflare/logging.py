import logging
import sys

from loguru import logger

__all__ = ["InterceptHandler", "configure_logging"]


class InterceptHandler(logging.Handler):
    """Forward records from stdlib loggers (httpx, websockets) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the global logger with the specified level and a clean format.

    Third-party libraries logging through the standard library are routed into
    the same sink, but only at WARNING and above unless DEBUG is requested.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )

    library_level = logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    logging.basicConfig(handlers=[InterceptHandler()], level=library_level, force=True)
