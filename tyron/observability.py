"""
Tyron Observability

Structured logging and a tamper-evident audit trail for account operations.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Account Components                    │
    │  logger.info("msg", guardian_id=x)  audit.record(...)    │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                AccountLogger / AuditLog                  │
    │  correlation IDs, component tags, hash-chained events   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │              logging.Handler (JSON or text)              │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Tyron. All rights reserved.
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
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

# Context variable for operation-scoped data
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class Component(Enum):
    """Account components for categorization."""
    REGISTRY = "registry"
    SIGNATURE = "signature"
    OWNERSHIP = "ownership"
    RECOVERY = "recovery"
    AUTHORIZATION = "authorization"
    ACCOUNT = "account"
    STORAGE = "storage"
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
    component: str = ""
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

    def to_text(self) -> str:
        extras = " ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        head = f"{self.timestamp} {self.level.upper():8} {self.logger}"
        if self.operation:
            head += f" [{self.operation}]"
        return f"{head} {self.message}" + (f" {extras}" if extras else "")


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one structured event per line."""

    def __init__(self, stream: Any = None, fmt: str = "json"):
        super().__init__()
        self.stream = stream or sys.stderr
        self.fmt = fmt

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                component=getattr(record, "component", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            line = event.to_text() if self.fmt == "text" else event.to_json()
            self.stream.write(line + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


ROOT_LOGGER_NAME = "tyron"


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> logging.Logger:
    """Install a single structured handler on the package root logger."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        if isinstance(handler, StructuredHandler):
            root.removeHandler(handler)
    root.addHandler(StructuredHandler(stream=stream, fmt=fmt))
    return root


class AccountLogger:
    """
    Structured logger for account components.

    Automatically includes the correlation ID and component tag in all log
    events. Handlers live on the ``tyron`` root logger (see
    ``configure_logging``).
    """

    def __init__(self, name: str, component: Component):
        self.name = name
        self.component = component
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component.value}.{name}")

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
            "component": self.component.value,
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
        level = logging.DEBUG if success else logging.WARNING
        status = "completed" if success else "failed"
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
    """The bound correlation ID, or a fresh unbound one outside any scope."""
    return correlation_id_var.get() or generate_correlation_id()


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation ID for the duration of the block.

    An ID bound by an enclosing scope is kept unless one is passed
    explicitly, so nested operations share their caller's ID.
    """
    cid = correlation_id or correlation_id_var.get() or generate_correlation_id()
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(token)


def get_logger(name: str, component: Component) -> AccountLogger:
    """Get a logger for an account component."""
    return AccountLogger(name, component)


T = TypeVar("T")


def timed_operation(
    logger: AccountLogger,
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
# AUDIT LOG
# =============================================================================

class AuditOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


@dataclass
class AuditEvent:
    """An audit log entry."""
    event_id: str
    timestamp: str
    actor: str
    account: str
    action: str
    outcome: str
    details: Dict[str, Any]
    correlation_id: str = ""

    # Tamper evidence
    previous_event_digest: Optional[str] = None
    event_digest: str = ""

    def __post_init__(self):
        if not self.event_digest:
            self.event_digest = self._compute_digest()

    def _compute_digest(self) -> str:
        from tyron.core import jcs_canonicalize
        content = {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "account": self.account,
            "action": self.action,
            "outcome": self.outcome,
            "details": self.details,
            "previous_event_digest": self.previous_event_digest,
        }
        return hashlib.sha256(jcs_canonicalize(content)).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLog:
    """
    Tamper-evident audit log.

    Each event includes a hash chain linking to the previous event,
    making it possible to detect log tampering.
    """

    def __init__(self, logger: Optional[AccountLogger] = None):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()
        self._logger = logger or get_logger("audit", Component.ACCOUNT)

    def record(
        self,
        actor: str,
        account: str,
        action: str,
        outcome: AuditOutcome,
        **details: Any,
    ) -> AuditEvent:
        with self._lock:
            previous = self._events[-1].event_digest if self._events else None
            event = AuditEvent(
                event_id=f"evt-{len(self._events) + 1:012d}",
                timestamp=datetime.now(timezone.utc).isoformat(),
                actor=actor,
                account=account,
                action=action,
                outcome=outcome.value,
                details={k: str(v) for k, v in details.items()},
                correlation_id=get_correlation_id(),
                previous_event_digest=previous,
            )
            self._events.append(event)

        self._logger.info(
            f"AUDIT: {action} {outcome.value}",
            operation="audit",
            actor=actor,
            account=account,
            event_digest=event.event_digest,
        )
        return event

    def verify_chain(self) -> Tuple[bool, Optional[int]]:
        """
        Verify the audit log chain integrity.

        Returns (valid, first_invalid_index).
        """
        with self._lock:
            for i, event in enumerate(self._events):
                if event._compute_digest() != event.event_digest:
                    return (False, i)
                if i > 0 and event.previous_event_digest != self._events[i - 1].event_digest:
                    return (False, i)
            return (True, None)

    def events(
        self,
        action: Optional[str] = None,
        outcome: Optional[AuditOutcome] = None,
    ) -> List[AuditEvent]:
        with self._lock:
            events = list(self._events)
        if action:
            events = [e for e in events if e.action == action]
        if outcome:
            events = [e for e in events if e.outcome == outcome.value]
        return events

    def export(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.to_dict() for e in self._events]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
