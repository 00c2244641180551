"""Time-association port and delegate contract.

A *time association* is one remote time-reference peer together with
its latest measurement state.  The engine never talks to the network
itself: it reads five attributes from each association and is told,
through a delegate, whenever a measurement attempt completes.

Sign convention: ``offset`` is *local clock minus reference clock*.
A positive offset means the local clock runs ahead, so network time is
``local_time - offset``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class PeerDelegate(Protocol):
    """Receiver of measurement results."""

    def on_peer_result(self, peer: TimeAssociation) -> None:
        """Called by *peer* after each measurement attempt.

        Invoked for successful and failed attempts alike; the receiver
        inspects ``peer.active`` and ``peer.trusty``.
        """
        ...


@runtime_checkable
class TimeAssociation(Protocol):
    """Port contract for one time-source peer.

    Attributes:
        address: Endpoint identifier, unique within a pool.
        active: Peer is running and has produced a usable sample.
            ``False`` before the first usable sample and after
            :meth:`finish`.
        trusty: The latest state passed the peer's own validity checks.
        offset: Local-minus-reference clock delta in seconds.
        dispersion: Non-negative uncertainty bound on ``offset``;
            smaller is better.
        delegate: Result receiver; ``None`` silences the peer.
    """

    delegate: PeerDelegate | None

    @property
    def address(self) -> str: ...

    @property
    def active(self) -> bool: ...

    @property
    def trusty(self) -> bool: ...

    @property
    def offset(self) -> float: ...

    @property
    def dispersion(self) -> float: ...

    def enable(self) -> None:
        """Start measuring.  Implementations stagger the first exchange."""
        ...

    def finish(self) -> None:
        """Stop measuring for good.  Idempotent."""
        ...


AssociationFactory = Callable[[str], TimeAssociation]
"""Builds an (unstarted) association for one resolved address."""
