"""Association pool: resolution, spawning, eviction, and shutdown.

The pool owns the current association set, an immutable ``tuple``.
Every change builds a new tuple and swaps the reference under
``_swap_lock``; readers simply grab :attr:`AssociationPool.associations`
and work on that snapshot without locking.

Whole resolutions are additionally serialised by an ``asyncio.Lock``
so two overlapping :meth:`AssociationPool.resolve_and_start` calls can
never produce two live peer sets.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Sequence

from netclock._association import AssociationFactory, PeerDelegate, TimeAssociation
from netclock._errors import ResolutionError
from netclock._resolver import ResolverPort, parse_host_list

logger = logging.getLogger(__name__)


class AssociationPool:
    """Owns the lifecycle of all time associations.

    Args:
        resolver: Turns host names into addresses.
        factory: Builds one association per unique address.
    """

    def __init__(
        self,
        *,
        resolver: ResolverPort,
        factory: AssociationFactory,
    ) -> None:
        self._resolver = resolver
        self._factory = factory
        self._associations: tuple[TimeAssociation, ...] = ()
        self._swap_lock = threading.Lock()
        self._resolve_lock = asyncio.Lock()
        self._generation = 0

    @property
    def associations(self) -> tuple[TimeAssociation, ...]:
        """Current association set (an immutable snapshot)."""
        return self._associations

    def __len__(self) -> int:
        return len(self._associations)

    # -- Resolution ---------------------------------------------------------

    async def resolve_addresses(self, hosts: Iterable[str]) -> list[str]:
        """Resolve *hosts* and return their unique addresses.

        Host entries that are blank, comments, or whitespace-led are
        skipped.  A host that fails to resolve is logged and contributes
        nothing.  Addresses keep first-seen order.
        """
        unique: dict[str, None] = {}
        for host in parse_host_list(hosts):
            try:
                addresses = await self._resolver.resolve(host)
            except (ResolutionError, OSError) as exc:
                logger.warning("Skipping %s: %s", host, exc, extra={"host": host})
                continue

            if not addresses:
                logger.warning(
                    "No addresses resolved for %s", host, extra={"host": host}
                )
                continue

            logger.debug(
                "%s resolved to %s",
                host,
                ", ".join(addresses),
                extra={"host": host},
            )
            unique.update(dict.fromkeys(addresses))

        return list(unique)

    async def resolve_and_start(
        self,
        hosts: Iterable[str],
        *,
        delegate: PeerDelegate | None = None,
    ) -> tuple[TimeAssociation, ...]:
        """Resolve *hosts* and start one association per unique address.

        The current set is replaced by the new associations.  Callers
        stop the previous set first (see :meth:`stop_all`).  When
        :meth:`stop_all` runs while this call is in flight, the freshly
        started associations are finished instead of installed.

        Returns:
            The new association set, or ``()`` when it was discarded.
        """
        generation = self._generation
        async with self._resolve_lock:
            addresses = await self.resolve_addresses(hosts)
            logger.info("Starting %d association(s)", len(addresses))

            started: list[TimeAssociation] = []
            for address in addresses:
                association = self._factory(address)
                association.delegate = delegate
                association.enable()
                started.append(association)

            new_set = tuple(started)
            with self._swap_lock:
                stale = generation != self._generation
                if stale:
                    for association in new_set:
                        association.delegate = None
                        association.finish()
                else:
                    self._associations = new_set

            if stale:
                logger.info(
                    "Discarded %d association(s) started after stop_all()",
                    len(new_set),
                )
                return ()
            return new_set

    # -- Mutation -----------------------------------------------------------

    def evict(self, victims: Sequence[TimeAssociation]) -> list[TimeAssociation]:
        """Remove and finish *victims* that are still in the pool.

        Returns:
            The associations actually removed.
        """
        if not victims:
            return []

        victim_ids = {id(v) for v in victims}
        with self._swap_lock:
            removed = [a for a in self._associations if id(a) in victim_ids]
            if not removed:
                return []
            self._associations = tuple(
                a for a in self._associations if id(a) not in victim_ids
            )
            for association in removed:
                association.delegate = None
                association.finish()

        logger.info(
            "Evicted %d untrusted association(s): %s",
            len(removed),
            ", ".join(a.address for a in removed),
        )
        return removed

    def stop_all(self) -> None:
        """Detach, finish, and drop every association.  Idempotent."""
        with self._swap_lock:
            self._generation += 1
            current = self._associations
            for association in current:
                association.delegate = None
                association.finish()
            self._associations = ()

        if current:
            logger.debug("Stopped %d association(s)", len(current))
