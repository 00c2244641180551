"""Exception hierarchy for netclock.

Only a handful of conditions ever leave the package as exceptions.
Everything on the estimation path is total: resolution and peer
failures are logged and absorbed, and :meth:`NetworkClock.current_offset`
always yields a number.  The classes below cover the remaining
programming and lifecycle errors.
"""

from __future__ import annotations


class NetClockError(Exception):
    """Base class for all netclock errors."""


class ResolutionError(NetClockError):
    """A host name could not be turned into network addresses.

    Raised by resolver adapters and caught by
    :class:`~netclock._pool.AssociationPool`, which logs it and moves on
    to the next host.

    Args:
        host: The host name that failed to resolve.
        reason: Human-readable cause (usually the ``gaierror`` text).
    """

    def __init__(self, host: str, reason: str = "") -> None:
        self.host = host
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Could not resolve {host!r}{detail}")


class NoEventLoopError(NetClockError, RuntimeError):
    """Background work was requested but no asyncio loop is available."""
