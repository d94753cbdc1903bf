"""
Structured logging for the bridge

Log lines go to stderr, one JSON object per line in production.
Every line written while handling one host event carries that event's
correlation id, so formatting, enqueue and the delivery kick can be
followed together.
"""
import logging
import json
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any
from contextvars import ContextVar
from functools import wraps

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# Chatty at INFO: one line per webhook call or SQL statement
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra_data`` lands under ``extra``"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        cid = correlation_id_var.get()
        if cid:
            entry["correlation_id"] = cid
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            entry["extra"] = extra_data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    """Logger whose level methods also take an ``extra_data`` dict"""

    def _log(self, level, msg, args, exc_info=None, extra=None,
             stack_info=False, stacklevel=1, extra_data=None):
        if extra_data:
            extra = {**(extra or {}), "extra_data": extra_data}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra,
                     stack_info=stack_info, stacklevel=stacklevel)


logging.setLoggerClass(StructuredLogger)


class CorrelationIdFilter(logging.Filter):
    """Fill ``%(correlation_id)s`` for the plain-text format"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Route all logging to a single stderr handler.

    The host may read stdout, so nothing is written there.
    ``json_format=False`` gives readable lines for local runs.
    """
    numeric_level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
        handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation id to the current context, generating one if missing"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    return correlation_id_var.get() or set_correlation_id()


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


def log_async_operation(operation_name: str):
    """
    Log start, completion and failure of a bridge lifecycle coroutine.

    Failures are logged with the traceback and re-raised.
    """
    def decorator(func):
        logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            logger.debug(f"{operation_name} started", extra_data={"operation": operation_name})
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{operation_name} failed: {e}",
                    extra_data={
                        "operation": operation_name,
                        "duration_seconds": round(time.perf_counter() - started, 3),
                        "error": str(e),
                    },
                    exc_info=True,
                )
                raise
            logger.info(
                f"{operation_name} completed",
                extra_data={
                    "operation": operation_name,
                    "duration_seconds": round(time.perf_counter() - started, 3),
                },
            )
            return result

        return wrapper
    return decorator
