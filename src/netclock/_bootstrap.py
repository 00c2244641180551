"""Composition root: build a ready-to-use :class:`NetworkClock`.

Applications that are happy with the defaults call
:func:`create_network_clock` once and keep the returned instance;
there is no process-wide singleton.  Every collaborator can be swapped
through keyword arguments.

Typical usage::

    import asyncio
    import netclock

    async def main() -> None:
        clock = netclock.create_network_clock()
        clock.synchronize()
        ...
        print(clock.current_network_time())
        clock.close()

    asyncio.run(main())
"""

from __future__ import annotations

import functools
import logging

from netclock._association import AssociationFactory
from netclock._clock import ClockPort
from netclock._controller import NetworkClock
from netclock._events import EventBus, LocalEventBus
from netclock._ntp import NtpAssociation
from netclock._pool import AssociationPool
from netclock._resolver import ResolverPort, SystemResolver, load_host_list
from netclock._settings import Settings, SyncSettings
from netclock._store import FallbackStore, JsonFileFallbackStore, MemoryFallbackStore

logger = logging.getLogger(__name__)


def resolve_hosts(settings: SyncSettings) -> list[str]:
    """Return the host names selected by *settings*.

    Precedence: ``hosts``, then ``hosts_file``, then the built-in list.
    """
    if settings.hosts is not None:
        return list(settings.hosts)
    return load_host_list(settings.hosts_file)


def build_store(settings: SyncSettings) -> FallbackStore:
    """File-backed store when ``cache_file`` is set, memory otherwise."""
    if settings.cache_file is not None:
        return JsonFileFallbackStore(settings.cache_file)
    return MemoryFallbackStore()


def create_network_clock(
    settings: Settings | None = None,
    *,
    events: EventBus | None = None,
    store: FallbackStore | None = None,
    resolver: ResolverPort | None = None,
    factory: AssociationFactory | None = None,
    clock: ClockPort | None = None,
) -> NetworkClock:
    """Wire a :class:`NetworkClock` from settings.

    Args:
        settings: Configuration; defaults to ``Settings()`` (environment
            and ``.env``).
        events: Event bus; a fresh :class:`LocalEventBus` by default.
        store: Fallback store; chosen by :func:`build_store` by default.
        resolver: Host resolver; :class:`SystemResolver` on the
            configured NTP port by default.
        factory: Association factory; :class:`NtpAssociation` with the
            configured peer settings by default.
        clock: Local time source.

    Returns:
        An idle clock.  Call :meth:`NetworkClock.synchronize` from a
        running event loop to start it.
    """
    settings = settings if settings is not None else Settings()

    if resolver is None:
        resolver = SystemResolver(port=settings.peer.port)
    if factory is None:
        factory = functools.partial(NtpAssociation, settings=settings.peer)
    pool = AssociationPool(resolver=resolver, factory=factory)
    hosts = resolve_hosts(settings.sync)
    logger.debug("Configured %d host(s)", len(hosts))

    return NetworkClock(
        pool=pool,
        store=store if store is not None else build_store(settings.sync),
        events=events if events is not None else LocalEventBus(),
        hosts=hosts,
        settings=settings.sync,
        clock=clock,
    )
