"""Logging and metric hooks for compare-and-swap operations.

While a proxy operation runs, every record logged under ``bucket_cas`` is
stamped with the bucket key, the operation id and the current attempt
number. Engine and proxy events add the script name and the attempt
outcome as top-level fields of the JSON output.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import IO, Any, Callable

PACKAGE_LOGGER = "bucket_cas"

# Per-event fields accepted by CasLogger, in JSON output order
EVENT_FIELDS = ("script", "outcome", "ttl_millis", "attempts", "elapsed_ms")
OPERATION_FIELDS = ("bucket_key", "operation_id", "attempt")

_current_operation: ContextVar["OperationContext | None"] = ContextVar(
    "bucket_cas_operation", default=None
)

_internal = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Outcome(str, Enum):
    """Result of one conditional write, or of a whole operation."""

    CREATED = "created"
    SWAPPED = "swapped"
    CONTENTION = "contention"
    EXHAUSTED = "exhausted"


def format_key(key: str | bytes) -> str:
    """Render a bucket key for logs and metric labels."""
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="backslashreplace")
    return key


class OperationContext:
    """Binds one proxy operation to the current execution context.

    Example:
        with OperationContext(b"user:42") as operation:
            operation.next_attempt()
            logger.debug("Reading state")  # stamped with key, id, attempt
    """

    def __init__(self, bucket_key: str | bytes, operation_id: str | None = None) -> None:
        self.bucket_key = format_key(bucket_key)
        self.operation_id = operation_id or uuid.uuid4().hex[:16]
        self.attempt = 0
        self._token = None

    @classmethod
    def current(cls) -> "OperationContext | None":
        return _current_operation.get()

    def next_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def fields(self) -> dict[str, Any]:
        return {
            "bucket_key": self.bucket_key,
            "operation_id": self.operation_id,
            "attempt": self.attempt,
        }

    def __enter__(self) -> "OperationContext":
        self._token = _current_operation.set(self)
        return self

    def __exit__(self, *args: Any) -> None:
        _current_operation.reset(self._token)
        self._token = None


def _stamp(record: logging.LogRecord) -> None:
    operation = OperationContext.current()
    values = operation.fields() if operation else {}
    for name in OPERATION_FIELDS:
        if not hasattr(record, name):
            setattr(record, name, values.get(name))


class OperationFilter(logging.Filter):
    """Copies the active operation's fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        _stamp(record)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record with operation and event fields flattened."""

    def format(self, record: logging.LogRecord) -> str:
        _stamp(record)
        document: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in OPERATION_FIELDS + EVENT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                document[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            document["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(document, default=str)


TEXT_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "[key=%(bucket_key)s op=%(operation_id)s attempt=%(attempt)s] %(message)s"
)


class CasLogger:
    """Logger whose keyword arguments become structured event fields.

    Example:
        logger = get_logger(__name__)
        logger.debug("Conditional write lost", script="SET_NX", outcome=Outcome.CONTENTION)
    """

    def __init__(self, name: str) -> None:
        self.logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        error: BaseException | None = None,
    ) -> None:
        unknown = set(fields) - set(EVENT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log fields: {', '.join(sorted(unknown))}")
        if not self.logger.isEnabledFor(level):
            return
        extra = {
            name: value.value if isinstance(value, Enum) else value
            for name, value in fields.items()
        }
        exc_info = (type(error), error, error.__traceback__) if error else None
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, error: BaseException | None = None, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields, error)

    def error(self, message: str, error: BaseException | None = None, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields, error)


def get_logger(name: str) -> CasLogger:
    """Get a structured logger for a module (typically ``__name__``)."""
    return CasLogger(name)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    format: str = "json",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Install a single handler on the package logger.

    Args:
        level: Minimum log level
        format: Output format ("json" or "text")
        stream: Destination (defaults to stdout)

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(LogLevel(level).value)
    package_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(OperationFilter())
    if format == "json":
        handler.setFormatter(JsonFormatter())
    elif format == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        raise ValueError(f"Unknown log format: {format}")

    package_logger.addHandler(handler)
    return package_logger


# Metric collection hook: callback(name, value, labels)
MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    _metric_callbacks.append(callback)


def unregister_metric_callback(callback: MetricCallback) -> None:
    """Remove a previously registered callback. No-op if unknown."""
    if callback in _metric_callbacks:
        _metric_callbacks.remove(callback)


def emit_metric(name: str, value: float, **labels: Any) -> None:
    """Send a metric to every registered callback.

    Labels default to the active operation's bucket key. A callback that
    raises is logged and skipped; the remaining callbacks still run.
    """
    operation = OperationContext.current()
    if operation is not None:
        labels.setdefault("bucket_key", operation.bucket_key)
    labels = {k: v.value if isinstance(v, Enum) else v for k, v in labels.items()}

    for callback in list(_metric_callbacks):
        try:
            callback(name, value, labels)
        except Exception:
            _internal.warning("Metric callback %r failed for %s", callback, name, exc_info=True)


def emit_counter(name: str, **labels: Any) -> None:
    """Emit a counter increment of 1."""
    emit_metric(name, 1.0, **labels)
