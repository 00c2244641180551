"""Configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Every variable carries the ``NETCLOCK_`` prefix and nested
models use ``__`` as the delimiter, e.g.
``NETCLOCK_PEER__TIMEOUT=1.5``.

The schema is split by concern:

* **sync** — host list, fallback cache, controller options.
* **peer** — NTP exchange parameters and per-peer trust thresholds.
* **mqtt** — optional broker bridge for events.
* **logging** — level, format, optional file sink, rotation.

All durations and offsets are in **seconds**.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

# -------------------------------------------------------------------
# Sub-models (BaseModel, NOT BaseSettings; nested via composition)
# -------------------------------------------------------------------


class SyncSettings(BaseModel):
    """Synchronization controller configuration.

    Environment variables (with ``__`` nesting)::

        NETCLOCK_SYNC__HOSTS_FILE=/etc/netclock/ntp.hosts
        NETCLOCK_SYNC__CACHE_FILE=/var/lib/netclock/offset.json
        NETCLOCK_SYNC__USE_SAVED_OFFSET_ON_NO_TRUST=false
    """

    hosts: list[str] | None = Field(
        default=None,
        description=(
            "Explicit host names to query. Takes precedence over "
            "``hosts_file``. When both are unset the built-in pool.ntp.org "
            "list is used."
        ),
    )
    hosts_file: str | None = Field(
        default=None,
        description=(
            "Text file with one host name per line. Lines that are empty, "
            "start with '#', or start with whitespace are skipped."
        ),
    )
    cache_file: str | None = Field(
        default=None,
        description=(
            "JSON file persisting the last trusted offset. ``None`` keeps "
            "the value in memory only."
        ),
    )
    use_saved_offset_on_no_trust: bool = Field(
        default=True,
        description=(
            "Fall back to the cached offset while no peer is trusted. "
            "When false the fallback offset is always 0."
        ),
    )
    auto_resync_on_local_clock_change: bool = Field(
        default=True,
        description="Resynchronize when the local wall clock jumps.",
    )
    clock_jump_threshold: Annotated[float, Field(gt=0)] = Field(
        default=1.0,
        description=(
            "Minimum divergence between wall-clock and monotonic deltas "
            "reported as a clock jump."
        ),
    )
    clock_jump_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description="Seconds between clock-jump checks.",
    )


class PeerSettings(BaseModel):
    """NTP exchange and per-peer trust parameters.

    A peer becomes *trusty* once its sample window holds at least
    ``min_good_samples`` accepted samples whose offsets scatter by no
    more than ``max_jitter``, and it has not failed
    ``max_consecutive_failures`` exchanges in a row.
    """

    ntp_version: Annotated[int, Field(ge=1, le=4)] = Field(
        default=3,
        description="NTP protocol version sent in requests.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=123,
        description="UDP port of the NTP servers.",
    )
    timeout: Annotated[float, Field(gt=0)] = Field(
        default=2.0,
        description="Seconds to wait for one NTP response.",
    )
    poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=64.0,
        description="Seconds between exchanges once the sample window is full.",
    )
    initial_poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=2.0,
        description="Seconds between exchanges while the window is filling.",
    )
    stagger: Annotated[float, Field(ge=0)] = Field(
        default=3.0,
        description=(
            "Upper bound of the random delay before a peer's first "
            "exchange, spreading the initial burst of traffic."
        ),
    )
    sample_window: Annotated[int, Field(ge=1)] = Field(
        default=8,
        description="Number of accepted samples kept per peer.",
    )
    min_good_samples: Annotated[int, Field(ge=1)] = Field(
        default=3,
        description="Accepted samples required before a peer can be trusted.",
    )
    max_jitter: Annotated[float, Field(gt=0)] = Field(
        default=0.1,
        description="Largest standard deviation of sample offsets still trusted.",
    )
    max_root_distance: Annotated[float, Field(gt=0)] = Field(
        default=1.5,
        description="Samples with a larger root distance are rejected.",
    )
    max_consecutive_failures: Annotated[int, Field(ge=1)] = Field(
        default=4,
        description="Consecutive failed exchanges after which trust is lost.",
    )


class MqttSettings(BaseModel):
    """Optional MQTT event bridge.

    Environment variables (with ``__`` nesting)::

        NETCLOCK_MQTT__ENABLED=true
        NETCLOCK_MQTT__HOST=broker.local
        NETCLOCK_MQTT__PORT=1883
        NETCLOCK_MQTT__USERNAME=user
        NETCLOCK_MQTT__PASSWORD=secret
        NETCLOCK_MQTT__TOPIC_PREFIX=netclock
    """

    enabled: bool = Field(
        default=False,
        description="Bridge netclock events to an MQTT broker.",
    )
    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP address.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1883,
        description="MQTT broker port.",
    )
    username: str | None = Field(
        default=None,
        description="MQTT authentication username (optional).",
    )
    password: SecretStr | None = Field(
        default=None,
        description="MQTT authentication password (optional).",
    )
    client_id: str = Field(
        default="",
        description="MQTT client identifier. Empty lets the broker assign one.",
    )
    qos: Annotated[int, Field(ge=0, le=2)] = Field(
        default=1,
        description="QoS for event publications and subscriptions.",
    )
    reconnect_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description="Seconds to wait before reconnecting after connection loss.",
    )
    topic_prefix: str = Field(
        default="netclock",
        description="Root prefix for event topics: ``{prefix}/events/{event}``.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` — structured JSON lines for log aggregators.
    - ``"text"`` (default) — human-readable timestamped lines.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="text",
        description=(
            "Log output format. "
            "'json' emits structured JSON lines; "
            "'text' emits human-readable timestamped lines."
        ),
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description=(
            "Maximum log file size in megabytes before rotation. "
            "Only applies when ``file`` is set."
        ),
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root netclock settings.

    Loaded from ``NETCLOCK_``-prefixed environment variables with the
    nested delimiter ``__`` and an optional ``.env`` file in the working
    directory.

    Example ``.env``::

        NETCLOCK_SYNC__HOSTS_FILE=ntp.hosts
        NETCLOCK_PEER__TIMEOUT=1.0
        NETCLOCK_LOGGING__LEVEL=DEBUG
        NETCLOCK_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="NETCLOCK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sync: SyncSettings = Field(
        default_factory=SyncSettings,
        description="Synchronization controller settings.",
    )
    peer: PeerSettings = Field(
        default_factory=PeerSettings,
        description="NTP peer settings.",
    )
    mqtt: MqttSettings = Field(
        default_factory=MqttSettings,
        description="MQTT event bridge settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
