"""Utility functions and classes."""

from .logging_utils import (
    CallbackLogHandler,
    configure_logging,
    get_structured_logger,
    resolve_level,
)

__all__ = [
    "CallbackLogHandler",
    "configure_logging",
    "get_structured_logger",
    "resolve_level",
]
