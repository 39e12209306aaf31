"""
HERDBOOK Observability Framework

Structured logging and a tamper-evident audit trail for the registry.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Registry Engine                       │
    │  logger.info("msg", hash=h)   audit.log(actor, action)   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │             HerdbookLogger / AuditLogger                 │
    │  Correlation IDs, structured context, hash chaining      │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │          StructuredHandler (JSON lines on stderr)        │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

GENESIS_HASH = "genesis"


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class HerdbookLayer(Enum):
    """HERDBOOK system layers for categorization."""
    REGISTRY = "registry"
    BATCH = "batch"
    CONFIG = "config"
    AUDIT = "audit"
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
        self._stream = stream

    @property
    def stream(self) -> Any:
        return self._stream or sys.stderr

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

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class HerdbookLogger:
    """
    Structured logger for HERDBOOK components.

    Automatically includes correlation IDs and layer information
    in all log events.
    """

    def __init__(
        self,
        name: str,
        layer: HerdbookLayer,
        level: Optional[LogLevel] = None,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"herdbook.{layer.value}.{name}")
        if level is not None:
            self._logger.setLevel(getattr(logging, level.value.upper()))

        if not any(isinstance(h, StructuredHandler) for h in self._logger.handlers):
            self._logger.addHandler(StructuredHandler())

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def set_level(self, level: LogLevel) -> None:
        self._logger.setLevel(getattr(logging, level.value.upper()))

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

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.DEBUG if success else logging.INFO
        status = "completed" if success else "rejected"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
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


def get_logger(name: str, layer: HerdbookLayer) -> HerdbookLogger:
    """Get a logger for a HERDBOOK component, honouring the configured level."""
    from herdbook.config import get_config

    level = LogLevel(get_config().observability.log_level.get())
    return HerdbookLogger(name, layer, level)


T = TypeVar("T")


def timed_operation(
    logger: HerdbookLogger,
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


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@dataclass
class AuditEvent:
    """One mutation attempt against the registry."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    resource_id: str
    outcome: str  # success, denied
    block_height: Optional[int] = None
    error_code: str = ""
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    prev_hash: str = GENESIS_HASH
    event_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def compute_hash(self) -> str:
        body = self.to_dict()
        body.pop("event_hash")
        data = json.dumps(body, sort_keys=True, default=str)
        return hashlib.sha256(data.encode()).hexdigest()


class AuditLogger:
    """
    Append-only audit logging.

    Each event commits to its predecessor's hash, so any edit or
    removal of a recorded event breaks ``verify_chain``.
    """

    def __init__(self, logger: HerdbookLogger):
        self._logger = logger
        self._events: List[AuditEvent] = []
        self._last_hash: str = GENESIS_HASH
        self._lock = threading.Lock()

    @property
    def head(self) -> str:
        """Hash of the most recent event."""
        return self._last_hash

    def log(
        self,
        actor: str,
        action: str,
        resource_id: str,
        outcome: str,
        block_height: Optional[int] = None,
        error_code: str = "",
        **details: Any,
    ) -> AuditEvent:
        """Log an audit event."""
        with self._lock:
            event = AuditEvent(
                event_id=uuid.uuid4().hex,
                timestamp=datetime.now(timezone.utc).isoformat(),
                actor=actor,
                action=action,
                resource_id=resource_id,
                outcome=outcome,
                block_height=block_height,
                error_code=error_code,
                correlation_id=get_correlation_id(),
                details=details,
                prev_hash=self._last_hash,
            )
            event.event_hash = event.compute_hash()
            self._last_hash = event.event_hash
            self._events.append(event)

        self._logger.debug(
            f"AUDIT: {action} on {resource_id} -> {outcome}",
            operation="audit",
            **event.to_dict(),
        )

        return event

    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def verify_chain(self) -> bool:
        """Re-derive every hash link from genesis."""
        with self._lock:
            prev = GENESIS_HASH
            for event in self._events:
                if event.prev_hash != prev or event.compute_hash() != event.event_hash:
                    return False
                prev = event.event_hash
            return prev == self._last_hash
