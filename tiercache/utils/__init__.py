"""
tiercache utilities.
"""

from tiercache.utils.logger_config import setup_logging, configure_logging

__all__ = [
    "setup_logging",
    "configure_logging",
]
