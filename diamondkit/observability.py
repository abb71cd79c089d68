"""
DIAMONDKIT Observability

Structured logging for assembly and timelock operations. Every log event is
a single JSON line carrying the component layer, the operation name and the
structured context passed by the caller.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Application Code                      │
    │  logger.info("module deployed", module=x, selectors=n)  │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     DiamondLogger                        │
    │      correlation IDs, layer tagging, structured data    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                   StructuredHandler                      │
    │                JSON lines on stderr                      │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

# Context variable for run-scoped correlation
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class DiamondLayer(Enum):
    """Component layers for categorization."""
    FINGERPRINT = "fingerprint"
    DEPLOYER = "deployer"
    ASSEMBLY = "assembly"
    COVERAGE = "coverage"
    TIMELOCK = "timelock"
    CHAIN = "chain"
    GOVERNANCE = "governance"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            # Resolved per record so pytest's stream capture is honoured
            stream = self.stream or sys.stderr
            stream.write(event.to_json() + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


def _make_handler(json_output: bool) -> logging.Handler:
    if json_output:
        return StructuredHandler()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(layer)s] %(name)s: %(message)s"
    ))
    return handler


def _configured_output() -> Tuple[LogLevel, bool]:
    from diamondkit.config import get_config

    observability = get_config().observability
    level_name = str(observability.log_level.get()).lower()
    try:
        level = LogLevel(level_name)
    except ValueError:
        level = LogLevel.INFO
    return level, bool(observability.json_logs.get())


class DiamondLogger:
    """
    Structured logger for diamondkit components.

    Automatically includes the correlation ID and layer in all log events.
    """

    def __init__(
        self,
        name: str,
        layer: DiamondLayer,
        level: LogLevel = LogLevel.INFO,
        json_output: bool = True,
        follow_config: bool = False,
    ):
        self.name = name
        self.layer = layer
        self.follow_config = follow_config
        self._logger = logging.getLogger(f"diamondkit.{layer.value}.{name}")
        self._logger.setLevel(getattr(logging, level.value.upper()))

        # Add a handler once per logger name
        if not self._logger.handlers:
            self._logger.addHandler(_make_handler(json_output))

    def sync_with_config(self) -> None:
        """Apply the current observability.log_level and json_logs settings."""
        level, json_output = _configured_output()
        self._logger.setLevel(getattr(logging, level.value.upper()))
        handlers = self._logger.handlers
        if len(handlers) == 1 and isinstance(handlers[0], StructuredHandler) != json_output:
            self._logger.removeHandler(handlers[0])
            self._logger.addHandler(_make_handler(json_output))

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        if self.follow_config:
            self.sync_with_config()
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one on first use."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: DiamondLayer) -> DiamondLogger:
    """
    Get a logger for a diamondkit component.

    The logger follows the observability settings: level and output format
    are re-read on every record, so configuration loaded after import (for
    example a `--config` file) applies to module-level loggers too.
    """
    level, json_output = _configured_output()
    return DiamondLogger(name, layer, level, json_output=json_output, follow_config=True)


T = TypeVar("T")


def timed_operation(
    logger: DiamondLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator
