"""
Logging utilities for gardensync.

Provides structured logging with operation context (which export/import an
entry belongs to and which phase it was in) and an in-memory ring buffer of
recent records that can be attached to a bug report.
"""

import collections
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


CONTEXT_FIELDS = ("operation_id", "operation", "phase", "key", "collection")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Operation context fields if present (operation_id, phase, ...)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with operation context.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [operation_id=X phase=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for name in ("operation_id", "phase"):
            value = getattr(record, name, None)
            if value is not None:
                context_parts.append(f"{name}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


class OperationContextFilter(logging.Filter):
    """Copies the active OperationContext onto every record passing through."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in OperationContext.get_current().items():
            if getattr(record, name, None) is None:
                setattr(record, name, value)
        return True


class OperationContext:
    """
    Context manager for tagging log records with the running operation.

    The context is thread-local, so the local store worker thread does not
    inherit tags from whichever caller submitted work to it.

    Example:
        >>> with OperationContext(operation="import", operation_id="a1b2"):
        ...     logger.info("Unpacking archive")
    """

    _local = threading.local()

    def __init__(self, **fields: Any):
        self.context = {k: v for k, v in fields.items() if v is not None}
        self._previous: Optional[Dict[str, Any]] = None

    def __enter__(self) -> "OperationContext":
        self._previous = getattr(OperationContext._local, "context", None)
        merged = dict(self._previous or {})
        merged.update(self.context)
        OperationContext._local.context = merged
        return self

    def __exit__(self, *args) -> None:
        OperationContext._local.context = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current operation context."""
        context = getattr(cls._local, "context", None)
        return dict(context) if context else {}


class RingBufferHandler(logging.Handler):
    """
    Keeps the most recent log records in memory.

    Each instance owns its own buffer; attach one to the package logger at
    startup and read it back with ``records()`` or ``dump()``.
    """

    def __init__(self, capacity: int = 500, level: int = logging.NOTSET):
        super().__init__(level)
        self.capacity = capacity
        self._buffer: collections.deque = collections.deque(maxlen=capacity)
        self.setFormatter(StructuredFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._buffer.append(self.format(record))
        except Exception:
            self.handleError(record)

    def records(self) -> List[Dict[str, Any]]:
        """Return buffered entries as dictionaries, oldest first."""
        return [json.loads(line) for line in list(self._buffer)]

    def dump(self) -> str:
        """Return buffered entries as newline-delimited JSON."""
        return "\n".join(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
    ring_buffer: Optional[RingBufferHandler] = None,
) -> logging.Logger:
    """
    Configure the ``gardensync`` package logger.

    Args:
        level: Logging level (default: INFO)
        structured: If True, output JSON-structured logs; if False, human-readable
        include_timestamp: Whether to include timestamp in log messages
        ring_buffer: Optional in-memory handler to attach as well

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger("gardensync")
    package_logger.setLevel(level)

    # Only add handler if none exist (avoid duplicate handlers)
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RingBufferHandler)
               for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        if structured:
            handler.setFormatter(StructuredFormatter(include_timestamp=include_timestamp))
        else:
            handler.setFormatter(HumanReadableFormatter(include_timestamp=include_timestamp))
        handler.addFilter(OperationContextFilter())
        package_logger.addHandler(handler)

    if ring_buffer is not None and ring_buffer not in package_logger.handlers:
        ring_buffer.addFilter(OperationContextFilter())
        package_logger.addHandler(ring_buffer)

    return package_logger
