"""
Logging configuration for tiercache.

Every module logs to ``logging.getLogger(__name__)``, i.e. somewhere under
the ``tiercache`` logger. Applications attach output to that hierarchy
once at startup; the root logger is left alone.
"""

import logging
import sys
from typing import Optional

from tiercache.config.settings import Settings, get_settings

PACKAGE_LOGGER = "tiercache"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class _PackageHandler:
    """Marks handlers installed here so a second setup replaces only them."""

    attribute = "_tiercache_handler"

    @classmethod
    def mark(cls, handler: logging.Handler) -> logging.Handler:
        setattr(handler, cls.attribute, True)
        return handler

    @classmethod
    def owned(cls, handler: logging.Handler) -> bool:
        return getattr(handler, cls.attribute, False)


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Send tiercache logs to stdout (and optionally a file).

    Calling it again swaps the handlers it added before; handlers attached
    by the application are kept.

    Args:
        level: Logging level name; unknown names fall back to INFO
        format_string: Log record format
        log_file: Optional file to append logs to

    Returns:
        The tiercache package logger
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(numeric_level)

    for handler in [h for h in package_logger.handlers if _PackageHandler.owned(h)]:
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        package_logger.addHandler(_PackageHandler.mark(handler))

    return package_logger


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Apply LOG_LEVEL / LOG_FORMAT / LOG_FILE from settings."""
    settings = settings or get_settings()
    return setup_logging(
        level=settings.log_level,
        format_string=settings.log_format,
        log_file=settings.log_file or None,
    )
