"""Event subscription port and in-process adapter.

netclock consumes one event and produces one:

- :data:`CLOCK_CHANGED` — "the local wall clock was stepped by a
  significant, discontinuous amount".  Triggers a resynchronization
  when the controller's auto-resync option is on.
- :data:`SYNC_COMPLETE` — broadcast exactly once per synchronization
  cycle, on the first trusted peer result.

Events carry no payload; handlers are zero-argument callables.  The
core only depends on the :class:`EventBus` protocol, so the delivery
mechanism (in-process, MQTT, a GUI toolkit's signals) is swappable.

Dispatch is fire-and-forget: a failing handler is logged with its
traceback and never breaks the publisher or the other handlers.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------------

SYNC_COMPLETE = "sync_complete"
"""Published once per cycle when the first trusted sample arrives."""

CLOCK_CHANGED = "clock_changed"
"""Published when the local wall clock jumps."""

EventHandler = Callable[[], None]
"""Zero-argument callback invoked for each delivered event."""

# ---------------------------------------------------------------------------
# Port (Protocol)
# ---------------------------------------------------------------------------


@runtime_checkable
class EventBus(Protocol):
    """Port contract for event subscription and broadcast."""

    def subscribe(self, event: str, handler: EventHandler) -> None: ...

    def unsubscribe(self, event: str, handler: EventHandler) -> None: ...

    def publish(self, event: str) -> None: ...


# ---------------------------------------------------------------------------
# In-process adapter
# ---------------------------------------------------------------------------


class LocalEventBus:
    """Synchronous in-process event bus.

    Handlers run on the publishing thread, in subscription order.
    Subscribing the same handler twice registers it once.  The handler
    table is guarded by a lock and copied before dispatch, so handlers
    may (un)subscribe while an event is being delivered.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: EventHandler) -> None:
        """Register *handler* for *event*."""
        with self._lock:
            handlers = self._handlers.setdefault(event, [])
            if handler not in handlers:
                handlers.append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        """Remove *handler* from *event*.  Unknown handlers are ignored."""
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: str) -> None:
        """Invoke every handler registered for *event*."""
        with self._lock:
            handlers = list(self._handlers.get(event, ()))

        logger.debug("Publishing %s to %d handler(s)", event, len(handlers))
        for handler in handlers:
            try:
                handler()
            except Exception:
                logger.exception("Error in %s handler %r", event, handler)

    def handler_count(self, event: str) -> int:
        """Number of handlers currently registered for *event*."""
        with self._lock:
            return len(self._handlers.get(event, ()))
