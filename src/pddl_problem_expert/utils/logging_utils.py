"""
Logging utilities built on the standard library logging package.

Knowledge-base components log through named loggers that propagate to the
root handlers installed by configure_logging. A callback handler lets an
embedding process receive ingestion diagnostics without reading stdout.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Optional, Union

LOG_FORMAT = "[%(levelname)s:%(name)s:%(filename)s:%(lineno)d] %(message)s"
FILE_LOG_FORMAT = "%(asctime)s " + LOG_FORMAT


class CallbackLogHandler(logging.Handler):
    """Logging handler that forwards formatted messages to a callback."""

    def __init__(
        self,
        callback: Callable[..., None],
        level: int = logging.NOTSET,
        *,
        pass_record: bool = False,
    ):
        super().__init__(level)
        self.callback = callback
        self.pass_record = pass_record

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if self.pass_record:
                self.callback(msg, record)
            else:
                self.callback(msg)
        except Exception:
            self.handleError(record)


def resolve_level(level: Union[int, str]) -> int:
    """
    Convert a level name such as "debug" or "WARNING" to its numeric value.

    Raises:
        ValueError: If the name is not a standard logging level
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    level: Union[int, str] = logging.INFO,
    callback: Optional[Callable[[str], None]] = None,
    log_file: Optional[Path] = None,
    include_console: bool = True,
) -> None:
    """
    Configure root logging with optional callback and file handlers.

    Calling it again does not install duplicate handlers.

    Args:
        level: Minimum log level to emit (number or name).
        callback: Optional callable to receive formatted log lines immediately.
        log_file: Optional path to append log output.
        include_console: Whether to emit to stderr as well.
    """
    level = resolve_level(level)
    logger = logging.getLogger()
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    if include_console and not any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    ):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if callback and not any(
        isinstance(h, CallbackLogHandler) and h.callback == callback for h in logger.handlers
    ):
        callback_handler = CallbackLogHandler(callback)
        callback_handler.setLevel(level)
        callback_handler.setFormatter(formatter)
        logger.addHandler(callback_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if not any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in logger.handlers
        ):
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            logger.addHandler(file_handler)


def get_structured_logger(name: str) -> logging.Logger:
    """
    Get a knowledge-base logger that propagates to the root handlers.

    Args:
        name: Component name, e.g. "ProblemExpert".

    Returns:
        logging.Logger: Logger named "knowledge.<name>".
    """
    logger = logging.getLogger(f"knowledge.{name}")
    logger.propagate = True
    return logger
