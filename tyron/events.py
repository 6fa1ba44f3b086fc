"""
Tyron Account Events

Typed domain events and a synchronous event bus. Accounts publish events
only after an operation commits, so a subscriber never observes a change that
was rolled back.

Usage
─────

    bus = EventBus()

    @bus.subscribe(OwnershipTransferred)
    def on_transfer(event: OwnershipTransferred):
        print(f"{event.account}: {event.previous_owner} -> {event.new_owner}")

    account = SSIAccount.create(owner, guardians=[...], event_bus=bus)

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from tyron.observability import Component, get_logger

logger = get_logger("events", Component.ACCOUNT)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all account events.

    Events are immutable facts about a committed state change.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    account: str = ""

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON for display/transport (not for digest computation)."""
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of event content using JCS canonicalization."""
        from tyron.core import jcs_canonicalize
        return hashlib.sha256(jcs_canonicalize(self.to_dict())).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class AccountCreated(Event):
    owner: str = ""
    guardian_count: int = 0
    threshold: int = 0


@dataclass
class GuardiansAdded(Event):
    guardian_ids: List[str] = field(default_factory=list)
    guardian_count: int = 0
    threshold: int = 0


@dataclass
class GuardiansRemoved(Event):
    guardian_ids: List[str] = field(default_factory=list)
    guardian_count: int = 0
    threshold: int = 0


@dataclass
class OwnershipTransferStarted(Event):
    previous_owner: str = ""
    new_owner: str = ""


@dataclass
class OwnershipTransferred(Event):
    previous_owner: str = ""
    new_owner: str = ""


@dataclass
class AccountRecovered(Event):
    new_owner: str = ""
    votes: int = 0
    threshold: int = 0


@dataclass
class Upgraded(Event):
    implementation: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {getattr(handler, '__name__', handler)} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous event bus.

    Handlers run in priority order (higher first). A failing handler is
    isolated: it is counted, reported to ``on_error`` and logged, and the
    remaining handlers still run.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator to subscribe a handler to event types (all events if none given)."""
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        # Call handlers (outside lock)
        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.error(str(error), error_code="event_handler_failed", event_type=event.event_type)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


class EventRecorder:
    """Collects every published event; handy for tests and the CLI."""

    def __init__(self, bus: EventBus):
        self.events: List[Event] = []
        bus.subscribe()(self.events.append)

    def of_type(self, event_type: Type[Event]) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
