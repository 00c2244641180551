"""Clock port, system adapter, and local clock-jump detection.

Provides ClockPort (Protocol), SystemClock, and ClockJumpDetector.

ClockPort exposes two time bases:

- ``now()`` — wall-clock seconds since the Unix epoch.  This is the
  clock that netclock *corrects*: network time is ``now() - offset``.
- ``monotonic()`` — an arbitrary-epoch clock immune to NTP slews and
  manual changes.  Only differences between calls are meaningful
  (PEP 418).

ClockJumpDetector compares the two.  Over a short interval both
advance by the same amount; when the wall clock moves by a different
amount, somebody (a user, a daemon, a hypervisor resume) stepped it,
and every previously measured offset is stale.  The detector then
publishes :data:`~netclock._events.CLOCK_CHANGED`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol, runtime_checkable

from netclock._events import CLOCK_CHANGED, EventBus

logger = logging.getLogger(__name__)


@runtime_checkable
class ClockPort(Protocol):
    """Local time source.

    The default implementation wraps ``time.time()`` and
    ``time.monotonic()``.  Tests inject a deterministic fake clock for
    reproducible results.
    """

    def now(self) -> float:
        """Return wall-clock time in seconds since the Unix epoch."""
        ...

    def monotonic(self) -> float:
        """Return monotonic time in seconds from an arbitrary epoch."""
        ...


class SystemClock:
    """Production clock wrapping the :mod:`time` module.

    Satisfies :class:`ClockPort` via structural subtyping — no
    base-class inheritance required (PEP 544).
    """

    def now(self) -> float:
        """Return ``time.time()``."""
        return time.time()

    def monotonic(self) -> float:
        """Return ``time.monotonic()``."""
        return time.monotonic()


class ClockJumpDetector:
    """Detect discontinuous changes of the local wall clock.

    Each :meth:`check` compares how far the wall clock and the
    monotonic clock moved since the previous check.  A difference larger
    than *threshold* seconds is reported as a jump and
    ``CLOCK_CHANGED`` is published on *events*.

    Args:
        events: Bus receiving ``CLOCK_CHANGED``.
        clock: Time source (defaults to :class:`SystemClock`).
        threshold: Minimum divergence in seconds that counts as a jump.
        interval: Seconds between checks in :meth:`run`.
    """

    def __init__(
        self,
        events: EventBus,
        *,
        clock: ClockPort | None = None,
        threshold: float = 1.0,
        interval: float = 5.0,
    ) -> None:
        self._events = events
        self._clock = clock if clock is not None else SystemClock()
        self._threshold = threshold
        self._interval = interval
        self._last_wall = self._clock.now()
        self._last_mono = self._clock.monotonic()

    def check(self) -> bool:
        """Compare both clocks and publish on a jump.

        Returns:
            ``True`` when a jump was detected (and published).
        """
        wall = self._clock.now()
        mono = self._clock.monotonic()
        drift = (wall - self._last_wall) - (mono - self._last_mono)
        self._last_wall = wall
        self._last_mono = mono

        if abs(drift) <= self._threshold:
            return False

        logger.info("Local clock jumped by %+.3fs", drift)
        self._events.publish(CLOCK_CHANGED)
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Check every *interval* seconds until *stop_event* is set."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                self.check()
