"""
Structured Logging

JSON-structured engine logs scoped to the run in flight.

Design decisions:
- Every record carries the run scope (run, task and goal ids) set with
  `StructuredLogger.context`; the scope lives in a context variable, so
  parallel subtasks each log their own task id
- Handlers are plain objects with a level; formatting is a pure function
- Component loggers are children of one root logger and share its handlers
"""

import contextvars
import json
import sys
import traceback
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


_scope: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("autonomy_log_scope", default={})


@dataclass(frozen=True)
class ErrorInfo:
    """An exception captured on a record."""

    message: str
    type: str
    stack_trace: str

    @classmethod
    def capture(cls, exc: BaseException) -> "ErrorInfo":
        return cls(
            message=str(exc),
            type=type(exc).__name__,
            stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )


@dataclass
class LogRecord:
    """A structured log record."""

    level: LogLevel
    message: str
    logger_name: str = "autonomy"
    data: dict[str, Any] = field(default_factory=dict)
    scope: dict[str, Any] = field(default_factory=dict)
    exc: ErrorInfo | None = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def run_id(self) -> str | None:
        return self.scope.get("run_id")

    @property
    def task_id(self) -> str | None:
        return self.scope.get("task_id")

    @property
    def goal_id(self) -> str | None:
        return self.scope.get("goal_id")

    @property
    def error(self) -> str | None:
        return self.exc.message if self.exc else None

    @property
    def error_type(self) -> str | None:
        return self.exc.type if self.exc else None

    @property
    def stack_trace(self) -> str | None:
        return self.exc.stack_trace if self.exc else None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.name,
            "logger": self.logger_name,
            "message": self.message,
            **self.scope,
        }
        if self.data:
            payload["data"] = self.data
        if self.exc:
            payload["error"] = {
                "message": self.exc.message,
                "type": self.exc.type,
                "stack_trace": self.exc.stack_trace,
            }
        return payload


def format_json(record: LogRecord) -> str:
    return json.dumps(record.to_dict(), default=str)


def format_text(record: LogRecord) -> str:
    """One human-readable line: time, level, logger, scope, message, data."""
    parts = [
        record.timestamp.strftime("%H:%M:%S.%f")[:-3],
        f"{record.level.name:<8}",
        record.logger_name,
    ]
    if record.scope:
        parts.append("[" + " ".join(f"{k}={v}" for k, v in record.scope.items()) + "]")
    parts.append(record.message)
    if record.data:
        parts.append(" ".join(f"{k}={v!r}" for k, v in record.data.items()))
    if record.exc:
        parts.append(f"({record.exc.type}: {record.exc.message})")
    return " ".join(parts)


class LogHandler:
    """Receives records at or above its level."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG):
        self.level = level

    def accepts(self, record: LogRecord) -> bool:
        return record.level >= self.level

    def emit(self, record: LogRecord) -> None:
        raise NotImplementedError


class ConsoleHandler(LogHandler):
    """Writes one line per record, JSON or text."""

    def __init__(
        self,
        level: LogLevel = LogLevel.DEBUG,
        stream: TextIO | None = None,
        json_output: bool = True,
    ):
        super().__init__(level)
        self.stream = stream or sys.stderr
        self._format = format_json if json_output else format_text

    def emit(self, record: LogRecord) -> None:
        self.stream.write(self._format(record) + "\n")


class BufferHandler(LogHandler):
    """Keeps the most recent records in memory, for tests and debugging."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG, max_records: int = 1000):
        super().__init__(level)
        self.records: deque[LogRecord] = deque(maxlen=max_records)

    def emit(self, record: LogRecord) -> None:
        self.records.append(record)

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [r.message for r in self.records if level is None or r.level == level]

    def clear(self) -> None:
        self.records.clear()


class StructuredLogger:
    """
    Engine logger.

    Keyword arguments of the level methods become the record's `data`;
    `error=` (warning and above) attaches an exception.
    """

    def __init__(
        self,
        name: str = "autonomy",
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
    ):
        self.name = name
        self.level = level
        self.handlers = handlers if handlers is not None else [ConsoleHandler()]

    def child(self, suffix: str) -> "StructuredLogger":
        """Logger sharing handlers and level under a dotted sub-name."""
        return StructuredLogger(f"{self.name}.{suffix}", self.level, self.handlers)

    def _emit(self, level: LogLevel, message: str, exc: BaseException | None, data: dict[str, Any]) -> None:
        if level < self.level:
            return

        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            data=data,
            scope=dict(_scope.get()),
            exc=ErrorInfo.capture(exc) if exc is not None else None,
        )
        for handler in self.handlers:
            if not handler.accepts(record):
                continue
            try:
                handler.emit(record)
            except Exception as e:
                # Handler failures never reach the caller
                sys.stderr.write(f"log handler {type(handler).__name__} failed: {e}\n")

    def debug(self, message: str, **data: Any) -> None:
        self._emit(LogLevel.DEBUG, message, None, data)

    def info(self, message: str, **data: Any) -> None:
        self._emit(LogLevel.INFO, message, None, data)

    def warning(self, message: str, error: BaseException | None = None, **data: Any) -> None:
        self._emit(LogLevel.WARNING, message, error, data)

    def error(self, message: str, error: BaseException | None = None, **data: Any) -> None:
        self._emit(LogLevel.ERROR, message, error, data)

    def critical(self, message: str, error: BaseException | None = None, **data: Any) -> None:
        self._emit(LogLevel.CRITICAL, message, error, data)

    def exception(self, message: str, **data: Any) -> None:
        """Log the exception currently being handled at ERROR level."""
        self.error(message, error=sys.exc_info()[1], **data)

    @staticmethod
    @contextmanager
    def context(**scope: Any):
        """
        Add run-scope fields to every record logged inside the block.

        Usage:
            with logger.context(run_id="run-1", task_id="task-1"):
                logger.info("Executing task")
        """
        token = _scope.set({**_scope.get(), **scope})
        try:
            yield
        finally:
            _scope.reset(token)


def get_logger(name: str = "autonomy") -> StructuredLogger:
    """Standalone logger for components built outside the factory."""
    return StructuredLogger(name=name)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    json_output: bool = True,
    extra_handlers: list[LogHandler] | None = None,
) -> StructuredLogger:
    """Build the root engine logger."""
    if isinstance(level, str):
        level = LogLevel[level.upper()]

    handlers: list[LogHandler] = [ConsoleHandler(level=level, json_output=json_output)]
    handlers.extend(extra_handlers or [])
    return StructuredLogger(level=level, handlers=handlers)
