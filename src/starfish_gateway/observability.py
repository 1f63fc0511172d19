"""Structured logging, request context and metric hooks.

Every log line carries the request id, bucket and S3 operation of the request
being served, taken from context variables set by `RequestContext`.
Metrics are plain callbacks so the gateway stays independent of any
monitoring backend.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

PACKAGE_LOGGER = "starfish_gateway"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
bucket_var: ContextVar[str | None] = ContextVar("bucket", default=None)
operation_var: ContextVar[str | None] = ContextVar("operation", default=None)


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Request-scoped fields attached to log lines."""

    request_id: str | None = None
    bucket: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "LogContext":
        return cls(
            request_id=request_id_var.get(),
            bucket=bucket_var.get(),
            operation=operation_var.get(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, followed by `extra`."""
        result = {
            name: value
            for name, value in (
                ("request_id", self.request_id),
                ("bucket", self.bucket),
                ("operation", self.operation),
            )
            if value
        }
        result.update(self.extra)
        return result


@dataclass
class LogEntry:
    """One JSON log line."""

    level: LogLevel
    message: str
    timestamp: str
    logger: str
    context: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    duration_ms: float | None = None

    def to_json(self) -> str:
        data: dict[str, Any] = {
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "logger": self.logger,
        }
        if self.context:
            data["context"] = self.context
        if self.error:
            data["error"] = self.error
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        # Datetimes and paths in context fall back to str()
        return json.dumps(data, default=str)


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    context = LogContext.current().to_dict()
    extra = getattr(record, "context", None)
    if isinstance(extra, dict):
        context.update(extra)
    return context


class StructuredFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        error = None
        if record.exc_info and record.exc_info[0] is not None:
            error = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
            }

        entry = LogEntry(
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            logger=record.name,
            context=_record_context(record),
            error=error,
            duration_ms=getattr(record, "duration_ms", None),
        )
        return entry.to_json()


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines with the request context appended as key=value."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [f"{key}={value}" for key, value in _record_context(record).items()]
        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            pairs.append(f"duration_ms={duration_ms:.1f}")
        if pairs:
            line = f"{line} [{' '.join(pairs)}]"
        return line


class StructuredLogger:
    """Logger taking structured context, errors and durations.

    Handlers live on the package logger (see `configure_logging`); module
    loggers only propagate to it.

    Example:
        logger = StructuredLogger("starfish_gateway.gateway")
        logger.info("Listing served", context={"objects": 12})
        logger.warning("Refresh failed", error=exception)
    """

    def __init__(self, name: str, level: LogLevel | None = None) -> None:
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(level.value)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if context:
            extra["context"] = context
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms

        exc_info = (type(error), error, error.__traceback__) if error else None
        self.logger.log(logging.getLevelName(level.value), message, exc_info=exc_info, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.DEBUG, message, context, duration_ms=duration_ms)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.INFO, message, context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.WARNING, message, context, error, duration_ms)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.ERROR, message, context, error, duration_ms)


class RequestContext:
    """Binds request id, bucket and operation for the enclosed block.

    Nested contexts override only the fields they set and restore the outer
    values on exit.

    Example:
        async with RequestContext(bucket="Archive", operation="ListObjectsV2"):
            logger.info("Processing request")
    """

    def __init__(
        self,
        request_id: str | None = None,
        bucket: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.request_id = request_id or str(uuid.uuid4())
        self.bucket = bucket
        self.operation = operation
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RequestContext":
        for var, value in (
            (request_id_var, self.request_id),
            (bucket_var, self.bucket),
            (operation_var, self.operation),
        ):
            if value:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)

    async def __aenter__(self) -> "RequestContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


class Timer:
    """Wall-clock timer usable with `with` or `async with`.

    Example:
        with Timer() as t:
            await client.query(tag)
        logger.info("Query complete", duration_ms=t.duration_ms)
    """

    def __init__(self) -> None:
        self.start_time: float = 0
        self.end_time: float = 0

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.end_time = time.perf_counter()

    async def __aenter__(self) -> "Timer":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


# Callback(name, value, labels)
MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    """Register a sink for metric events (Prometheus, StatsD, tests)."""
    _metric_callbacks.append(callback)


def unregister_metric_callback(callback: MetricCallback) -> None:
    """Remove a previously registered callback. No-op if unknown."""
    if callback in _metric_callbacks:
        _metric_callbacks.remove(callback)


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Send a metric to every registered callback.

    The current bucket is added as a label unless one is given. A failing
    callback never affects the request being served.
    """
    labels = labels or {}
    bucket = bucket_var.get()
    if bucket:
        labels.setdefault("bucket", bucket)

    for callback in _metric_callbacks:
        try:
            callback(name, value, labels)
        except Exception:
            pass


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    emit_metric(name, 1.0, labels)


def emit_gauge(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    emit_metric(name, value, labels)


def emit_timer(name: str, duration_ms: float, labels: dict[str, Any] | None = None) -> None:
    emit_metric(name, duration_ms, labels)


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format: str = "json",
) -> None:
    """Install a single stdout handler on the package logger.

    Args:
        level: Minimum log level
        format: "json" for JSON lines, anything else for text with context
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.value)
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if format == "json" else ContextTextFormatter())
    package_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
