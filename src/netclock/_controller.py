"""Synchronization controller and public query surface.

:class:`NetworkClock` ties the pieces together:

- :meth:`~NetworkClock.synchronize` tears the current pool down and
  schedules a fresh resolution in the background.
- Peers report through a per-cycle delegate; the first trusted result
  of a cycle persists its offset, flips
  :attr:`~NetworkClock.is_synchronized`, and publishes
  :data:`~netclock._events.SYNC_COMPLETE` exactly once.
- :meth:`~NetworkClock.current_offset` evicts untrusted peers from
  oversized pools and runs the estimator over a snapshot.

State machine::

    IDLE ──synchronize()──▶ RESOLVING ──resolution done──▶ AWAITING
                              │                              │
                              └──first trusted result────────┴──▶ SYNCHRONIZED

    any state ──reset()/close()──▶ IDLE
    any state ──synchronize()────▶ RESOLVING
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import enum
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from netclock._association import TimeAssociation
from netclock._clock import ClockPort, SystemClock
from netclock._errors import NetClockError, NoEventLoopError
from netclock._estimator import estimate_offset, select_for_eviction
from netclock._events import CLOCK_CHANGED, SYNC_COMPLETE, EventBus
from netclock._pool import AssociationPool
from netclock._resolver import DEFAULT_HOSTS
from netclock._settings import SyncSettings
from netclock._store import FallbackStore

logger = logging.getLogger(__name__)


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    """Whether the calling thread is running *loop*."""
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class SyncState(enum.Enum):
    """Lifecycle state of a :class:`NetworkClock`."""

    IDLE = "idle"
    RESOLVING = "resolving"
    AWAITING = "awaiting"
    SYNCHRONIZED = "synchronized"


@dataclass(frozen=True, slots=True)
class _CycleDelegate:
    """Peer delegate bound to one synchronization cycle.

    Results from peers of an earlier cycle are dropped by the
    controller, even if such a peer reports after being detached.
    """

    clock: NetworkClock
    cycle: int

    def on_peer_result(self, peer: TimeAssociation) -> None:
        self.clock._on_peer_result(peer, self.cycle)


class NetworkClock:
    """Network-time estimator over a pool of time associations.

    Args:
        pool: Association pool to drive.
        store: Persistence for the last trusted offset.
        events: Bus for ``CLOCK_CHANGED`` (consumed) and
            ``SYNC_COMPLETE`` (produced).
        hosts: Host names to query; defaults to
            :data:`~netclock._resolver.DEFAULT_HOSTS`.
        settings: Initial option values.
        clock: Local time source.

    Attributes:
        use_saved_offset_on_no_trust: Use the stored offset while no
            peer is trusted (otherwise the fallback is 0).
        auto_resync_on_local_clock_change: Call :meth:`synchronize`
            when ``CLOCK_CHANGED`` arrives.
    """

    def __init__(
        self,
        *,
        pool: AssociationPool,
        store: FallbackStore,
        events: EventBus,
        hosts: Sequence[str] | None = None,
        settings: SyncSettings | None = None,
        clock: ClockPort | None = None,
    ) -> None:
        settings = settings if settings is not None else SyncSettings()
        self._pool = pool
        self._store = store
        self._events = events
        self._hosts: tuple[str, ...] = tuple(
            hosts if hosts is not None else DEFAULT_HOSTS
        )
        self._clock = clock if clock is not None else SystemClock()

        self.use_saved_offset_on_no_trust = settings.use_saved_offset_on_no_trust
        self.auto_resync_on_local_clock_change = (
            settings.auto_resync_on_local_clock_change
        )

        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._is_synchronized = False
        self._cycle = 0
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._resolution: asyncio.Task[None] | concurrent.futures.Future[None] | None
        self._resolution = None

        self._events.subscribe(CLOCK_CHANGED, self._on_clock_changed)

    def __repr__(self) -> str:
        return (
            f"NetworkClock(state={self._state.value}, "
            f"associations={len(self._pool)})"
        )

    # -- Queries ------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_synchronized(self) -> bool:
        """Whether a trusted result has arrived in the current cycle."""
        return self._is_synchronized

    @property
    def hosts(self) -> tuple[str, ...]:
        """Host names queried on each :meth:`synchronize`."""
        return self._hosts

    @property
    def associations(self) -> tuple[TimeAssociation, ...]:
        """Snapshot of the live association set."""
        return self._pool.associations

    def current_offset(self) -> float:
        """Return the best current estimate of local minus network time.

        Untrusted peers are evicted first when the pool is oversized.
        Never raises; without trusted peers the result is the stored
        offset (if enabled) or ``0.0``.
        """
        snapshot = self._pool.associations
        victims = select_for_eviction(snapshot)
        if victims:
            self._pool.evict(victims)

        cached: float | None = None
        if self.use_saved_offset_on_no_trust:
            cached = self._store.get()
        return estimate_offset(
            snapshot,
            cached_offset=cached,
            use_cache=self.use_saved_offset_on_no_trust,
        )

    def current_network_time(self) -> datetime:
        """Return the local wall-clock time corrected by the offset (UTC).

        An offset that pushes the result outside the representable range
        is logged and ignored.
        """
        offset = self.current_offset()
        now = self._clock.now()
        try:
            return datetime.fromtimestamp(now - offset, tz=UTC)
        except (OverflowError, OSError, ValueError):
            logger.warning("Offset %r out of range, using local time", offset)
            return datetime.fromtimestamp(now, tz=UTC)

    # -- Lifecycle ----------------------------------------------------------

    def synchronize(self) -> None:
        """Start a new synchronization cycle without blocking.

        Stops every current association, clears the synchronized flag,
        and schedules resolution of :attr:`hosts` as a background task.

        Raises:
            NetClockError: After :meth:`close`.
            NoEventLoopError: When called outside a running loop before
                any earlier call captured one.
        """
        if self._closed:
            msg = "NetworkClock is closed"
            raise NetClockError(msg)

        loop = self._target_loop()
        self.stop_all()
        with self._lock:
            self._cycle += 1
            cycle = self._cycle
            self._is_synchronized = False
            self._state = SyncState.RESOLVING
        self._events.subscribe(CLOCK_CHANGED, self._on_clock_changed)

        logger.info(
            "Synchronizing against %d host(s) (cycle %d)",
            len(self._hosts),
            cycle,
            extra={"cycle": cycle},
        )
        coro = self._run_resolution(cycle)
        if _on_loop(loop):
            self._resolution = loop.create_task(coro, name=f"netclock-resolve-{cycle}")
        else:
            self._resolution = asyncio.run_coroutine_threadsafe(coro, loop)

    def stop_all(self) -> None:
        """Cancel resolution, stop every association, drop the listener."""
        self._cancel_resolution()
        self._pool.stop_all()
        self._events.unsubscribe(CLOCK_CHANGED, self._on_clock_changed)

    def reset(self) -> None:
        """Return to ``IDLE``, stopping all associations."""
        self.stop_all()
        with self._lock:
            self._cycle += 1
            self._is_synchronized = False
            self._state = SyncState.IDLE

    def close(self) -> None:
        """Reset and refuse further :meth:`synchronize` calls."""
        self.reset()
        self._closed = True

    async def wait_resolved(self) -> None:
        """Wait for the background resolution of the current cycle."""
        resolution = self._resolution
        if resolution is None:
            return
        with contextlib.suppress(
            asyncio.CancelledError, concurrent.futures.CancelledError
        ):
            if isinstance(resolution, concurrent.futures.Future):
                await asyncio.wrap_future(resolution)
            else:
                await resolution

    # -- Internals ----------------------------------------------------------

    def _target_loop(self) -> asyncio.AbstractEventLoop:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is None or self._loop.is_closed():
                msg = "synchronize() needs a running event loop"
                raise NoEventLoopError(msg) from None
        return self._loop

    def _cancel_resolution(self) -> None:
        resolution, self._resolution = self._resolution, None
        if resolution is None or resolution.done():
            return
        if isinstance(resolution, asyncio.Task) and not _on_loop(resolution.get_loop()):
            resolution.get_loop().call_soon_threadsafe(resolution.cancel)
        else:
            resolution.cancel()

    async def _run_resolution(self, cycle: int) -> None:
        try:
            associations = await self._pool.resolve_and_start(
                self._hosts,
                delegate=_CycleDelegate(self, cycle),
            )
        except Exception:
            logger.exception(
                "Resolution failed (cycle %d)", cycle, extra={"cycle": cycle}
            )
            associations = ()

        with self._lock:
            if cycle != self._cycle:
                return
            if self._state is SyncState.RESOLVING:
                self._state = SyncState.AWAITING

        if not associations:
            logger.warning(
                "No time associations available (cycle %d)",
                cycle,
                extra={"cycle": cycle},
            )

    def _on_peer_result(self, peer: TimeAssociation, cycle: int) -> None:
        if not (peer.active and peer.trusty):
            return

        with self._lock:
            if cycle != self._cycle:
                return
            first = not self._is_synchronized
            self._is_synchronized = True
            self._state = SyncState.SYNCHRONIZED

        self._store.set(peer.offset)
        if first:
            logger.info(
                "Synchronized via %s (offset=%+.6fs)",
                peer.address,
                peer.offset,
                extra={"cycle": cycle, "peer": peer.address, "offset": peer.offset},
            )
            self._events.publish(SYNC_COMPLETE)

    def _on_clock_changed(self) -> None:
        if not self.auto_resync_on_local_clock_change or self._closed:
            return
        logger.info("Local clock changed, resynchronizing")
        try:
            self.synchronize()
        except NoEventLoopError:
            logger.warning("Cannot resynchronize: no event loop available")
