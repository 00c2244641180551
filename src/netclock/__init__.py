"""netclock.

Robust network time from a pool of NTP servers: many peers are
queried concurrently, untrusted ones are filtered out, and the best
remaining offsets are averaged into one estimate.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("netclock")
except PackageNotFoundError:
    # Source checkouts without installed metadata
    __version__ = "0.0.0+unknown"

from netclock._association import AssociationFactory, PeerDelegate, TimeAssociation
from netclock._bootstrap import create_network_clock
from netclock._clock import ClockJumpDetector, ClockPort, SystemClock
from netclock._controller import NetworkClock, SyncState
from netclock._errors import NetClockError, NoEventLoopError, ResolutionError
from netclock._estimator import (
    EVICTION_THRESHOLD,
    MAX_AVERAGED,
    estimate_offset,
    select_for_eviction,
    select_trusted,
)
from netclock._events import CLOCK_CHANGED, SYNC_COMPLETE, EventBus, LocalEventBus
from netclock._logging import JsonFormatter, configure_logging
from netclock._mqtt import MockMqttClient, MqttClient, MqttEventBus, MqttPort
from netclock._ntp import NtpAssociation
from netclock._pool import AssociationPool
from netclock._resolver import (
    DEFAULT_HOSTS,
    ResolverPort,
    SystemResolver,
    load_host_list,
    parse_host_list,
)
from netclock._settings import (
    LoggingSettings,
    MqttSettings,
    PeerSettings,
    Settings,
    SyncSettings,
)
from netclock._store import FallbackStore, JsonFileFallbackStore, MemoryFallbackStore

__all__ = [
    # Version
    "__version__",
    # Controller
    "NetworkClock",
    "SyncState",
    "create_network_clock",
    # Associations
    "AssociationFactory",
    "AssociationPool",
    "NtpAssociation",
    "PeerDelegate",
    "TimeAssociation",
    # Estimation
    "EVICTION_THRESHOLD",
    "MAX_AVERAGED",
    "estimate_offset",
    "select_for_eviction",
    "select_trusted",
    # Resolution
    "DEFAULT_HOSTS",
    "ResolverPort",
    "SystemResolver",
    "load_host_list",
    "parse_host_list",
    # Clock
    "ClockJumpDetector",
    "ClockPort",
    "SystemClock",
    # Events
    "CLOCK_CHANGED",
    "SYNC_COMPLETE",
    "EventBus",
    "LocalEventBus",
    # MQTT
    "MockMqttClient",
    "MqttClient",
    "MqttEventBus",
    "MqttPort",
    # Store
    "FallbackStore",
    "JsonFileFallbackStore",
    "MemoryFallbackStore",
    # Errors
    "NetClockError",
    "NoEventLoopError",
    "ResolutionError",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "LoggingSettings",
    "MqttSettings",
    "PeerSettings",
    "Settings",
    "SyncSettings",
]
