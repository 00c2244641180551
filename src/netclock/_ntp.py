"""Production time association backed by ``ntplib``.

:class:`NtpAssociation` polls a single server address.  The packet
exchange itself is ``ntplib.NTPClient.request``, a blocking call that
runs in a worker thread via :func:`asyncio.to_thread`; the polling loop
is an asyncio task on the loop that called :meth:`NtpAssociation.enable`.

Sample handling:

1. A response is *rejected* when the server is unsynchronized
   (stratum 0 kiss-o'-death or stratum 16+, leap indicator 3), the
   round-trip delay is negative, or the root distance exceeds
   ``max_root_distance``.
2. Accepted samples enter a sliding window of ``sample_window``
   entries.  The association's offset is the window mean, its
   dispersion the mean sample dispersion plus the window jitter
   (population standard deviation of the offsets).
3. The association is trusty while the window holds at least
   ``min_good_samples`` samples, the jitter stays within
   ``max_jitter``, and fewer than ``max_consecutive_failures`` exchanges
   in a row have failed.

The delegate is notified after every attempt, good or bad.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import statistics
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol

import ntplib

from netclock._association import PeerDelegate
from netclock._settings import PeerSettings

logger = logging.getLogger(__name__)

_UNSYNCHRONIZED_STRATUM = 16
_LEAP_ALARM = 3


class NtpClientPort(Protocol):
    """The slice of ``ntplib.NTPClient`` used here."""

    def request(
        self,
        host: str,
        version: int = 2,
        port: int | str = "ntp",
        timeout: float = 5,
    ) -> Any: ...


@dataclass(frozen=True, slots=True)
class NtpSample:
    """One accepted measurement.

    Attributes:
        offset: Local minus reference time in seconds.
        delay: Round-trip delay in seconds.
        dispersion: Error bound of this sample:
            ``root_dispersion + delay / 2``.
    """

    offset: float
    delay: float
    dispersion: float


def reject_reason(stats: Any, *, max_root_distance: float) -> str | None:
    """Return why *stats* is unusable, or ``None`` when it is acceptable.

    *stats* is an ``ntplib.NTPStats`` (or anything with the same
    ``stratum``, ``leap``, ``delay``, ``root_delay`` and
    ``root_dispersion`` attributes).
    """
    if stats.stratum == 0:
        return "kiss-o'-death (stratum 0)"
    if stats.stratum >= _UNSYNCHRONIZED_STRATUM:
        return f"unsynchronized (stratum {stats.stratum})"
    if stats.leap == _LEAP_ALARM:
        return "leap indicator alarm"
    if stats.delay < 0:
        return f"negative delay {stats.delay:.6f}s"
    root_distance = stats.root_delay / 2 + stats.root_dispersion + stats.delay / 2
    if root_distance > max_root_distance:
        return f"root distance {root_distance:.3f}s too large"
    return None


def sample_from_stats(stats: Any) -> NtpSample:
    """Convert an ``NTPStats`` into an :class:`NtpSample`.

    ntplib reports ``offset`` as reference minus local; it is negated
    here to match the association sign convention.
    """
    return NtpSample(
        offset=-stats.offset,
        delay=stats.delay,
        dispersion=stats.root_dispersion + stats.delay / 2,
    )


class NtpAssociation:
    """:class:`~netclock._association.TimeAssociation` for one NTP server.

    Args:
        address: Server IP address (or host name).
        settings: Exchange and trust parameters.
        client: NTP client; defaults to a fresh ``ntplib.NTPClient``.
        rng: Random source for the start-up stagger.
    """

    def __init__(
        self,
        address: str,
        *,
        settings: PeerSettings | None = None,
        client: NtpClientPort | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.delegate: PeerDelegate | None = None
        self._address = address
        self._settings = settings if settings is not None else PeerSettings()
        self._client = client if client is not None else ntplib.NTPClient()
        self._rng = rng if rng is not None else random.Random()

        self._window: deque[NtpSample] = deque(maxlen=self._settings.sample_window)
        self._consecutive_failures = 0
        self._offset = 0.0
        self._dispersion = 0.0
        self._jitter = 0.0
        self._active = False
        self._trusty = False
        self._finished = False

        self._lock = threading.Lock()
        self._task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def __repr__(self) -> str:
        return (
            f"NtpAssociation({self._address!r}, active={self._active}, "
            f"trusty={self._trusty}, offset={self._offset:+.6f}, "
            f"dispersion={self._dispersion:.6f})"
        )

    # -- TimeAssociation ----------------------------------------------------

    @property
    def address(self) -> str:
        return self._address

    @property
    def active(self) -> bool:
        return self._active

    @property
    def trusty(self) -> bool:
        return self._trusty

    @property
    def offset(self) -> float:
        return self._offset

    @property
    def dispersion(self) -> float:
        return self._dispersion

    @property
    def jitter(self) -> float:
        """Population standard deviation of the window offsets."""
        return self._jitter

    @property
    def sample_count(self) -> int:
        """Number of accepted samples currently in the window."""
        return len(self._window)

    def enable(self) -> None:
        """Start the polling task on the running event loop.

        Raises:
            RuntimeError: If called outside a running loop.
        """
        with self._lock:
            if self._finished or self._task is not None:
                return
            self._loop = asyncio.get_running_loop()
            self._task = self._loop.create_task(
                self._poll_loop(),
                name=f"netclock-peer-{self._address}",
            )

    def finish(self) -> None:
        """Stop polling.  Idempotent and safe from any thread."""
        with self._lock:
            if self._finished:
                return
            self._finished = True
            self._active = False
            self._trusty = False
            task, loop = self._task, self._loop

        if task is not None and loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(task.cancel)
        logger.debug(
            "Finished association %s", self._address, extra={"peer": self._address}
        )

    # -- Polling ------------------------------------------------------------

    async def _poll_loop(self) -> None:
        await asyncio.sleep(self._rng.uniform(0, self._settings.stagger))
        while not self._finished:
            await self.poll_once()
            await asyncio.sleep(self._next_interval())

    def _next_interval(self) -> float:
        if len(self._window) < self._settings.sample_window:
            return self._settings.initial_poll_interval
        return self._settings.poll_interval

    async def poll_once(self) -> None:
        """Perform one exchange, update state, and notify the delegate."""
        try:
            stats = await asyncio.to_thread(
                self._client.request,
                self._address,
                version=self._settings.ntp_version,
                port=self._settings.port,
                timeout=self._settings.timeout,
            )
        except (ntplib.NTPException, OSError) as exc:
            logger.debug(
                "NTP exchange with %s failed: %s",
                self._address,
                exc,
                extra={"peer": self._address},
            )
            self._record_failure()
        else:
            reason = reject_reason(
                stats, max_root_distance=self._settings.max_root_distance
            )
            if reason is None:
                self._record_sample(sample_from_stats(stats))
            else:
                logger.debug(
                    "Rejected sample from %s: %s",
                    self._address,
                    reason,
                    extra={"peer": self._address},
                )
                self._record_failure()

        if self._finished:
            return
        delegate = self.delegate
        if delegate is not None:
            delegate.on_peer_result(self)

    def _record_failure(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._consecutive_failures += 1
            self._evaluate()

    def _record_sample(self, sample: NtpSample) -> None:
        with self._lock:
            if self._finished:
                return
            self._consecutive_failures = 0
            self._window.append(sample)
            self._active = True
            self._evaluate()

    def _evaluate(self) -> None:
        settings = self._settings
        if not self._window:
            self._trusty = False
            return

        offsets = [s.offset for s in self._window]
        self._offset = statistics.fmean(offsets)
        self._jitter = statistics.pstdev(offsets) if len(offsets) > 1 else 0.0
        self._dispersion = (
            statistics.fmean(s.dispersion for s in self._window) + self._jitter
        )

        was_trusty = self._trusty
        self._trusty = (
            len(self._window) >= settings.min_good_samples
            and self._jitter <= settings.max_jitter
            and self._consecutive_failures < settings.max_consecutive_failures
        )
        if self._trusty != was_trusty:
            logger.info(
                "Association %s is now %s (offset=%+.6fs, jitter=%.6fs)",
                self._address,
                "trusted" if self._trusty else "untrusted",
                self._offset,
                self._jitter,
                extra={"peer": self._address, "offset": self._offset},
            )

    async def wait_finished(self) -> None:
        """Await the polling task after :meth:`finish` (tests, shutdown)."""
        task = self._task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
