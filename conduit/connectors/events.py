"""
Per-connector event bus.

Lifecycle notifications (connected, error, health_check, ...) are published
to listeners registered on a single connector instance.

Delivery:
    - Plain callables run synchronously, in registration order.
    - Coroutine functions are scheduled as tasks on the running loop; a
      done-callback logs and drops any failure.
    - A listener that raises is logged and skipped. It never blocks the
      lifecycle transition that emitted the event, nor later listeners.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ConnectorEventType(str, Enum):
    """Closed set of connector event types."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    HEALTH_CHECK = "health_check"
    RATE_LIMITED = "rate_limited"
    EVENT_RECEIVED = "event_received"
    EVENT_SENT = "event_sent"
    RECONNECTING = "reconnecting"
    CREDENTIALS_REFRESHED = "credentials_refreshed"


@dataclass(frozen=True, slots=True)
class ConnectorEvent:
    """Event delivered to listeners."""

    type: ConnectorEventType
    provider_id: str
    data: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


EventListener = Callable[[ConnectorEvent], Any]


class EventBus:
    """Publish/subscribe keyed by ConnectorEventType."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        self._listeners: dict[ConnectorEventType, list[EventListener]] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    def on(self, event_type: ConnectorEventType | str, listener: EventListener) -> None:
        """Register a listener for an event type."""
        self._listeners.setdefault(ConnectorEventType(event_type), []).append(listener)

    def off(self, event_type: ConnectorEventType | str, listener: EventListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(ConnectorEventType(event_type), [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: ConnectorEventType | str) -> int:
        return len(self._listeners.get(ConnectorEventType(event_type), []))

    def emit(self, event_type: ConnectorEventType | str, data: Any = None) -> ConnectorEvent:
        """
        Deliver an event to every listener for its type.

        Never raises because of a listener.
        """
        event = ConnectorEvent(
            type=ConnectorEventType(event_type),
            provider_id=self.provider_id,
            data=data,
        )

        # Copy so listeners may unsubscribe themselves during delivery
        for listener in list(self._listeners.get(event.type, [])):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event)
            except Exception as e:
                logger.warning(
                    f"[{self.provider_id}] Listener for '{event.type.value}' failed: {e}",
                    exc_info=True,
                )

        return event

    def _schedule(self, awaitable: Any, event: ConnectorEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop; nothing can drive the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(
                f"[{self.provider_id}] Dropped async listener for "
                f"'{event.type.value}': no running event loop"
            )
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_listener_done(t, event))

    def _on_listener_done(self, task: asyncio.Task[Any], event: ConnectorEvent) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                f"[{self.provider_id}] Async listener for '{event.type.value}' failed: {error}"
            )

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()


__all__ = [
    "ConnectorEvent",
    "ConnectorEventType",
    "EventBus",
    "EventListener",
]
