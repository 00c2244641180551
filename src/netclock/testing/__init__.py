"""Public test-support utilities for netclock.

Re-exports test doubles and factories so that consumer test suites
can import everything from a single ``netclock.testing`` namespace
instead of reaching into private modules.

Provided symbols:

- :class:`ClockHarness` — NetworkClock wired to in-memory doubles.
- :class:`FakeAssociation` / :class:`FakeAssociationFactory` —
  scriptable peers.
- :class:`FakeResolver` — table-driven host resolution.
- :class:`FakeClock` — deterministic wall and monotonic clocks.
- :class:`RecordingEventBus` — event bus with a publication log.
- :class:`MemoryFallbackStore` — in-memory offset cache.
- :class:`MockMqttClient` — in-memory MQTT double.
- :func:`make_settings` — ``Settings`` without ``.env`` files.
"""

from netclock._mqtt import MockMqttClient
from netclock._store import MemoryFallbackStore
from netclock.testing._association import FakeAssociation, FakeAssociationFactory
from netclock.testing._clock import FakeClock
from netclock.testing._events import RecordingEventBus
from netclock.testing._harness import ClockHarness
from netclock.testing._resolver import FakeResolver
from netclock.testing._settings import make_settings

__all__ = [
    "ClockHarness",
    "FakeAssociation",
    "FakeAssociationFactory",
    "FakeClock",
    "FakeResolver",
    "MemoryFallbackStore",
    "MockMqttClient",
    "RecordingEventBus",
    "make_settings",
]
