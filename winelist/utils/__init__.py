"""Utils module for the Wine List Generator."""

from winelist.utils.errors import AppError, ErrorHandler
from winelist.utils.logger import LogContext, get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "ErrorHandler",
    "AppError",
]
