"""A logger that carries structured fields and can rotate its file."""

from __future__ import annotations

import logging
import os
import sys
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from typing import Any, Mapping, Optional

DEFAULT_LOG_LEVEL = logging.INFO
LOG_FILE_NAME = "migration-verifier.log"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
_MAX_LOG_BYTES = 100 * 1024 * 1024
_MAX_BACKUPS = 1000


class InvariantError(AssertionError):
    """Raised when an invariant does not hold."""


class Logger:
    """A logging.Logger plus a set of fields and the handler it writes to."""

    def __init__(
        self,
        logger: logging.Logger,
        handler: Optional[logging.Handler] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.logger = logger
        self.handler = handler
        self.fields: dict[str, Any] = dict(fields or {})

    def with_field(self, key: str, value: Any) -> "Logger":
        """Return a sub-logger with one more field, sharing this handler."""
        return Logger(self.logger, self.handler, {**self.fields, key: value})

    def rotate(self) -> None:
        """Roll the log file over if the handler is a rotating file handler."""
        if isinstance(self.handler, RotatingFileHandler):
            with suppress(OSError):
                self.handler.doRollover()

    def is_enabled_for(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def log(self, level: int, msg: str, *args: Any, **fields: Any) -> None:
        """Log a message at `level`, with this logger's fields and any extra ones."""
        if not self.logger.isEnabledFor(level):
            return
        merged = {**self.fields, **fields}
        text = msg % args if args else msg
        if merged:
            text += " " + " ".join(f"{key}={value}" for key, value in merged.items())
        self.logger.log(level, "%s", text, extra={"fields": merged})

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self.log(logging.INFO, msg, *args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self.log(logging.WARNING, msg, *args, **fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self.log(logging.ERROR, msg, *args, **fields)

    def critical(self, msg: str, *args: Any, **fields: Any) -> None:
        self.log(logging.CRITICAL, msg, *args, **fields)


def new_logger(logger: logging.Logger, handler: Optional[logging.Handler]) -> Logger:
    """Wrap `logger`, attach `handler` to it if needed, and rotate the handler."""
    if handler is not None:
        if handler.formatter is None:
            handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        if handler not in logger.handlers:
            logger.addHandler(handler)
    wrapped = Logger(logger, handler)
    wrapped.rotate()
    return wrapped


def _stderr_logger(level: int) -> Logger:
    logger = logging.Logger("migverifier", level)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    return Logger(logger, handler)


def new_default_logger() -> Logger:
    """A logger writing to stderr at the default level."""
    return _stderr_logger(DEFAULT_LOG_LEVEL)


def new_debug_logger() -> Logger:
    """A logger writing to stderr at debug level."""
    return _stderr_logger(logging.DEBUG)


def new_rotating_handler(dir_path: str | os.PathLike[str]) -> RotatingFileHandler:
    """Create `dir_path` if needed and return a rotating handler for the log file in it."""
    os.makedirs(dir_path, mode=0o744, exist_ok=True)
    return RotatingFileHandler(
        os.path.join(dir_path, LOG_FILE_NAME),
        maxBytes=_MAX_LOG_BYTES,
        backupCount=_MAX_BACKUPS,
        delay=True,
    )


def invariant(logger: Optional[Logger], predicate: bool, message: str, *args: Any) -> None:
    """Log and raise InvariantError unless `predicate` holds."""
    if predicate:
        return
    text = message % args if args else message
    if logger is not None:
        logger.critical(text)
    else:
        logging.getLogger(__name__).critical("%s", text)
    raise InvariantError(text)