"""Offset selection policy.

Two pure functions over an association snapshot:

- :func:`select_for_eviction` names the untrusted peers to drop once
  the pool is large enough that dropping them cannot starve the
  estimate.
- :func:`estimate_offset` averages the offsets of the best trusted
  peers, ranked by their own dispersion, and falls back to a cached
  value when nobody is trusted.

Neither function performs I/O or mutates its input; eviction itself is
carried out by :meth:`AssociationPool.evict`.

The eviction threshold and the averaging cap are both eight, but they
are unrelated knobs and kept as separate constants.
"""

from __future__ import annotations

from collections.abc import Sequence

from netclock._association import TimeAssociation

EVICTION_THRESHOLD = 8
"""Untrusted peers are evicted only when the pool holds more than this."""

MAX_AVERAGED = 8
"""At most this many trusted peers contribute to the mean."""


def select_for_eviction(
    associations: Sequence[TimeAssociation],
    *,
    threshold: int = EVICTION_THRESHOLD,
) -> list[TimeAssociation]:
    """Return the active, untrusted associations to evict.

    Empty unless the *total* pool size (active or not) exceeds
    *threshold*.
    """
    if len(associations) <= threshold:
        return []
    return [a for a in associations if a.active and not a.trusty]


def select_trusted(
    associations: Sequence[TimeAssociation],
    *,
    limit: int = MAX_AVERAGED,
) -> list[TimeAssociation]:
    """Return up to *limit* active, trusted associations, best first.

    "Best" means smallest dispersion; ties keep the snapshot order
    (``sorted`` is stable).
    """
    trusted = [a for a in associations if a.active and a.trusty]
    return sorted(trusted, key=lambda a: a.dispersion)[:limit]


def estimate_offset(
    associations: Sequence[TimeAssociation],
    *,
    cached_offset: float | None = None,
    use_cache: bool = True,
    limit: int = MAX_AVERAGED,
) -> float:
    """Combine the association snapshot into one clock offset.

    Args:
        associations: Snapshot of the pool.
        cached_offset: Last persisted offset, ``None`` if never stored.
        use_cache: Whether the cached value may be used when no
            association is trusted.
        limit: Maximum number of trusted associations averaged.

    Returns:
        The mean offset of the selected trusted associations; without
        any, *cached_offset* (or ``0.0``) when *use_cache* is set,
        otherwise ``0.0``.
    """
    selected = select_trusted(associations, limit=limit)
    if selected:
        return sum(a.offset for a in selected) / len(selected)

    if use_cache and cached_offset is not None:
        return cached_offset
    return 0.0
