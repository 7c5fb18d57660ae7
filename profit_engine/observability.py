"""
Logging setup, correlation IDs and timing for report computations.

The engine itself only logs through module loggers; the host application
decides how those records are rendered.

Usage:
    from profit_engine.observability import setup_logging, correlation_context

    # In app startup:
    setup_logging(level="DEBUG", json_format=True)

    # Per report request:
    with correlation_context(request_id):
        result = compute_pnl(dataset, "weekly", window)
"""
import functools
import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from profit_engine.config import LoggingConfig

# Correlation ID of the report request being computed
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Extra fields added to every record (org id, report name...)
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# LogRecord attributes that are not user-supplied extras
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
})


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


def generate_correlation_id() -> str:
    """Generate a new short correlation ID."""
    return uuid.uuid4().hex[:8]


class correlation_context:
    """Context manager that tags log records with a correlation ID."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self.token = None

    def __enter__(self) -> str:
        self.token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, *args):
        _correlation_id.reset(self.token)


def add_log_context(**kwargs) -> None:
    """Add extra fields to every subsequent log record in this context."""
    _log_context.set({**_log_context.get(), **kwargs})


def clear_log_context() -> None:
    _log_context.set({})


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """
    JSON log formatter.

    Outputs timestamp, level, logger, message, correlation_id (if set), the
    log context, record extras and exception text (if present).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update(_log_context.get())
        entry.update(_extras(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable log formatter.

    Format: TIMESTAMP - LEVEL - LOGGER [CORRELATION_ID] - MESSAGE | EXTRAS
    """

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        correlation_str = f" [{correlation_id}]" if correlation_id else ""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        message = f"{timestamp} - {record.levelname:8} - {record.name}{correlation_str} - {record.getMessage()}"

        extras = {**_log_context.get(), **_extras(record)}
        if extras:
            message += f" | {extras}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure the ``profit_engine`` logger hierarchy.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON logs; otherwise human-readable
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    engine_logger = logging.getLogger("profit_engine")
    engine_logger.handlers.clear()
    engine_logger.addHandler(handler)
    engine_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def configure_logging(config: LoggingConfig) -> None:
    """Apply a LoggingConfig (see `profit_engine.config.load_config`)."""
    setup_logging(level=config.level, json_format=config.json_format)


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

class Timer:
    """
    Context manager for timing a block.

    Usage:
        with Timer("pnl_buckets", logger) as t:
            rows = build_rows()
        print(f"Buckets took {t.elapsed_ms}ms")
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        warn_threshold_ms: float = LoggingConfig.slow_operation_ms,
    ):
        self.name = name
        self.logger = logger
        self.warn_threshold_ms = warn_threshold_ms
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        if self.logger:
            _log_duration(self.logger, self.name, self.elapsed_ms, self.warn_threshold_ms)


def _log_duration(logger: logging.Logger, name: str, elapsed_ms: float, warn_threshold_ms: float) -> None:
    level = logging.WARNING if elapsed_ms > warn_threshold_ms else logging.DEBUG
    logger.log(level, f"{name} completed", extra={"duration_ms": round(elapsed_ms, 2)})


def timed(name: Optional[str] = None, warn_threshold_ms: float = LoggingConfig.slow_operation_ms):
    """
    Decorator logging how long a computation took.

    Args:
        name: Operation name (defaults to function name)
        warn_threshold_ms: Log at WARNING level if exceeds this threshold
    """
    def decorator(func: Callable) -> Callable:
        operation_name = name or func.__name__
        func_logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log_duration(func_logger, operation_name, (time.perf_counter() - start) * 1000, warn_threshold_ms)

        return wrapper

    return decorator
