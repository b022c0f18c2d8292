"""Logging for the price stream: one root handler, JSON or text, with error context."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from ..config.settings import LoggingConfig

CONTEXT_PREFIX = "ctx_"


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached through log_error_with_context, without their prefix."""
    return {
        key[len(CONTEXT_PREFIX):]: value
        for key, value in record.__dict__.items()
        if key.startswith(CONTEXT_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; error context lands under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'service': getattr(record, 'service', None),
            'logger': record.name,
            'message': record.getMessage(),
        }

        context = _context_of(record)
        if context:
            entry['context'] = context
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line console output with error context appended as key=value."""

    def __init__(self):
        super().__init__(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                         datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            first, sep, rest = line.partition("\n")
            line = f"{first} | {pairs}{sep}{rest}"
        return line


class _ServiceFilter(logging.Filter):
    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


def setup_logging(config: LoggingConfig, service_name: str = "price-stream") -> None:
    """
    Replace the root logger's handlers with one configured from ``config``.

    ``config.output`` is ``stdout``, ``stderr`` or a file path.
    """
    destination = config.output.lower()
    if destination in ('stdout', 'stderr'):
        handler = logging.StreamHandler(getattr(sys, destination))
    else:
        handler = logging.FileHandler(config.output)

    handler.setFormatter(JSONFormatter() if config.format.lower() == 'json' else TextFormatter())
    handler.addFilter(_ServiceFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(config.level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Frame-level chatter from the transport library
    logging.getLogger('websockets').setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={config.level}, format={config.format}, output={config.output}"
    )


def log_error_with_context(logger: logging.Logger, error: BaseException, operation: str, **context):
    """Log ``error`` at ERROR with the operation and keyword context attached.

    The traceback goes out separately at DEBUG.
    """
    extra = {
        f"{CONTEXT_PREFIX}operation": operation,
        f"{CONTEXT_PREFIX}error_type": type(error).__name__,
    }
    extra.update({f"{CONTEXT_PREFIX}{key}": value for key, value in context.items()})

    logger.error(f"Error in {operation}: {error}", extra=extra)
    logger.debug(f"Traceback for {operation}", exc_info=error)
