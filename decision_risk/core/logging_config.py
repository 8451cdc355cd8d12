"""Logging configuration for the decision risk engine.

Every module logs under the ``decision_risk`` namespace and attaches run
context (run id, option, scenario, timings) through ``extra=``. With
structured output enabled, that context is emitted as JSON fields next to
the message.
"""

import functools
import json
import logging
import logging.config
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

ROOT_LOGGER_NAME = "decision_risk"

# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Context fields a caller attached to ``record`` with ``extra=``."""
    return {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, context fields included."""

    def format(self, record):
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'message': record.getMessage(),
        }
        payload.update(record_context(record))
        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextFormatter(logging.Formatter):
    """Plain-text formatter that appends context as ``key=value`` pairs."""

    def format(self, record):
        line = super().format(record)
        context = record_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in sorted(context.items())) + "]"
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    enable_structured: bool = False,
) -> logging.Logger:
    """Configure the ``decision_risk`` logger tree.

    Console output goes to stderr so command output on stdout stays clean.
    A log file, when given, rotates at 10 MB and keeps five backups.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        enable_structured: Emit JSON records instead of text

    Returns:
        The package root logger
    """
    log_level = log_level.upper()
    formatter = 'structured' if enable_structured else 'text'

    handlers: Dict[str, Dict[str, Any]] = {
        'console': {
            'class': 'logging.StreamHandler',
            'stream': sys.stderr,
            'formatter': formatter,
            'level': log_level,
        }
    }
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': str(log_file),
            'maxBytes': 10 * 1024 * 1024,
            'backupCount': 5,
            'formatter': formatter,
            'level': log_level,
        }

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'text': {
                '()': ContextFormatter,
                'fmt': '%(asctime)s %(levelname)-8s %(name)s: %(message)s',
            },
            'structured': {'()': StructuredFormatter},
        },
        'handlers': handlers,
        'loggers': {
            ROOT_LOGGER_NAME: {
                'level': log_level,
                'handlers': list(handlers),
                'propagate': False,
            }
        },
    })

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.debug("Logging initialized", extra={'component': 'logging', 'log_file': str(log_file or '')})
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, placed under the package namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_performance(func):
    """Log the wall-clock time of every call to ``func``.

    Success is logged at INFO and failure at ERROR; the exception is
    re-raised unchanged.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        context = {'component': func.__module__.rsplit('.', 1)[-1], 'operation': func.__qualname__}
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            elapsed = time.perf_counter() - start
            logger.error(
                f"{func.__qualname__} failed after {elapsed:.3f}s: {e}",
                extra=dict(context, elapsed_seconds=elapsed),
            )
            raise
        elapsed = time.perf_counter() - start
        logger.info(
            f"{func.__qualname__} finished in {elapsed:.3f}s",
            extra=dict(context, elapsed_seconds=elapsed),
        )
        return result

    return wrapper
