"""Command-line interface (Typer-based).

Commands:

- ``netclock sync`` — run one synchronization cycle and report.
- ``netclock watch`` — keep synchronizing, follow local clock jumps,
  and log the offset periodically.
- ``netclock hosts`` — show (and optionally resolve) the host list.

Every command accepts ``--log-level``, ``--log-format`` and
``--env-file``; everything else comes from :class:`Settings`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, get_args

import typer
from pydantic import ValidationError

from netclock import __version__
from netclock._bootstrap import create_network_clock, resolve_hosts
from netclock._clock import ClockJumpDetector
from netclock._controller import NetworkClock
from netclock._errors import ResolutionError
from netclock._events import SYNC_COMPLETE, EventBus, LocalEventBus
from netclock._logging import configure_logging
from netclock._mqtt import MqttClient, MqttEventBus
from netclock._resolver import ResolverPort, SystemResolver, parse_host_list
from netclock._settings import LoggingSettings, Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_NOT_SYNCHRONIZED = 2
EXIT_RUNTIME_ERROR = 3

# ---------------------------------------------------------------------------
# Allowed values (extracted from LoggingSettings Literal types)
# ---------------------------------------------------------------------------

_VALID_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation,
)
_VALID_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation,
)

LogLevelOption = Annotated[
    str | None,
    typer.Option("--log-level", help="Override log level."),
]
LogFormatOption = Annotated[
    str | None,
    typer.Option("--log-format", help="Override log format."),
]
EnvFileOption = Annotated[
    str,
    typer.Option("--env-file", help="Path to .env file."),
]
HostsFileOption = Annotated[
    str | None,
    typer.Option("--hosts-file", help="File with one NTP host per line."),
]

cli = typer.Typer(
    help=f"netclock v{__version__} — network time from a pool of NTP servers.",
    no_args_is_help=True,
)


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Outcome of one ``netclock sync`` run."""

    synchronized: bool
    offset: float
    network_time: datetime
    associations: int
    trusted: int

    def to_dict(self) -> dict[str, object]:
        return {
            "synchronized": self.synchronized,
            "offset": self.offset,
            "network_time": self.network_time.isoformat(),
            "associations": self.associations,
            "trusted": self.trusted,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    env_file: str,
    log_level: str | None,
    log_format: str | None,
) -> Settings:
    """Build settings, apply CLI overrides, and configure logging."""
    if log_level is not None and log_level.upper() not in _VALID_LOG_LEVELS:
        raise typer.BadParameter(
            f"Invalid log level '{log_level}'. "
            f"Choose from: {', '.join(_VALID_LOG_LEVELS)}",
            param_hint="'--log-level'",
        )

    if log_format is not None and log_format.lower() not in _VALID_LOG_FORMATS:
        raise typer.BadParameter(
            f"Invalid log format '{log_format}'. "
            f"Choose from: {', '.join(_VALID_LOG_FORMATS)}",
            param_hint="'--log-format'",
        )

    try:
        settings = Settings(_env_file=env_file)  # type: ignore[call-arg]
    except ValidationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc

    if log_level is not None:
        settings.logging = settings.logging.model_copy(
            update={"level": log_level.upper()},
        )
    if log_format is not None:
        settings.logging = settings.logging.model_copy(
            update={"format": log_format.lower()},
        )

    configure_logging(settings.logging, service="netclock", version=__version__)
    return settings


def _apply_hosts_file(settings: Settings, hosts_file: str | None) -> None:
    if hosts_file is not None:
        settings.sync = settings.sync.model_copy(
            update={"hosts_file": hosts_file, "hosts": None},
        )


def _report(clock: NetworkClock) -> SyncReport:
    associations = clock.associations
    return SyncReport(
        synchronized=clock.is_synchronized,
        offset=clock.current_offset(),
        network_time=clock.current_network_time(),
        associations=len(associations),
        trusted=sum(1 for a in associations if a.active and a.trusty),
    )


async def sync_once(settings: Settings, *, timeout: float) -> SyncReport:
    """Run one cycle, waiting up to *timeout* seconds for a trusted peer."""
    loop = asyncio.get_running_loop()
    done = asyncio.Event()
    events = LocalEventBus()
    events.subscribe(SYNC_COMPLETE, lambda: loop.call_soon_threadsafe(done.set))

    clock = create_network_clock(settings, events=events)
    clock.synchronize()
    try:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(done.wait(), timeout=timeout)
        return _report(clock)
    finally:
        clock.close()


async def watch(
    settings: Settings,
    *,
    interval: float,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Synchronize continuously until *stop_event* is set (or a signal)."""
    loop = asyncio.get_running_loop()
    stop = stop_event if stop_event is not None else asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, stop.set)

    mqtt: MqttClient | None = None
    bridge: MqttEventBus | None = None
    events: EventBus
    if settings.mqtt.enabled:
        mqtt = MqttClient(settings.mqtt)
        bridge = MqttEventBus(
            mqtt,
            loop=loop,
            topic_prefix=settings.mqtt.topic_prefix,
            qos=settings.mqtt.qos,
        )
        await mqtt.start()
        await bridge.start()
        events = bridge
    else:
        events = LocalEventBus()

    clock = create_network_clock(settings, events=events)
    detector = ClockJumpDetector(
        events,
        threshold=settings.sync.clock_jump_threshold,
        interval=settings.sync.clock_jump_interval,
    )
    clock.synchronize()
    detector_task = asyncio.create_task(detector.run(stop))

    try:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                report = _report(clock)
                logger.info(
                    "offset=%+.6fs synchronized=%s trusted=%d/%d",
                    report.offset,
                    report.synchronized,
                    report.trusted,
                    report.associations,
                )
    finally:
        clock.close()
        stop.set()
        await detector_task
        if bridge is not None:
            await bridge.drain()
        if mqtt is not None:
            await mqtt.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(sig)


async def resolve_all(
    hosts: list[str],
    resolver: ResolverPort,
) -> list[tuple[str, list[str], str | None]]:
    """Resolve each host; returns ``(host, addresses, error)`` triples."""
    results: list[tuple[str, list[str], str | None]] = []
    for host in hosts:
        try:
            results.append((host, await resolver.resolve(host), None))
        except ResolutionError as exc:
            results.append((host, [], exc.reason or str(exc)))
    return results


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"netclock v{__version__}")
        raise typer.Exit()


@cli.callback()
def main_callback(
    version_flag: Annotated[
        bool | None,
        typer.Option(
            "--version",
            is_eager=True,
            callback=_version_callback,
            help="Show version and exit.",
        ),
    ] = None,
) -> None:
    """netclock — network time from a pool of NTP servers."""


@cli.command("sync")
def sync_command(
    timeout: Annotated[
        float,
        typer.Option("--timeout", min=0.0, help="Seconds to wait for a trusted peer."),
    ] = 15.0,
    hosts_file: HostsFileOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the report as JSON."),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Never fall back to the cached offset."),
    ] = False,
    log_level: LogLevelOption = None,
    log_format: LogFormatOption = None,
    env_file: EnvFileOption = ".env",
) -> None:
    """Run one synchronization cycle and print the result."""
    settings = _load_settings(env_file, log_level, log_format)
    _apply_hosts_file(settings, hosts_file)
    if no_cache:
        settings.sync = settings.sync.model_copy(
            update={"use_saved_offset_on_no_trust": False},
        )

    try:
        report = asyncio.run(sync_once(settings, timeout=timeout))
    except Exception as exc:
        logger.error("Runtime error: %s", exc)
        raise typer.Exit(EXIT_RUNTIME_ERROR) from exc

    if json_output:
        typer.echo(json.dumps(report.to_dict()))
    else:
        typer.echo(f"synchronized: {'yes' if report.synchronized else 'no'}")
        typer.echo(f"offset: {report.offset:+.6f} s")
        typer.echo(f"network time: {report.network_time.isoformat()}")
        typer.echo(f"associations: {report.associations} ({report.trusted} trusted)")

    raise typer.Exit(EXIT_OK if report.synchronized else EXIT_NOT_SYNCHRONIZED)


@cli.command("watch")
def watch_command(
    interval: Annotated[
        float,
        typer.Option("--interval", min=0.1, help="Seconds between status lines."),
    ] = 30.0,
    hosts_file: HostsFileOption = None,
    log_level: LogLevelOption = None,
    log_format: LogFormatOption = None,
    env_file: EnvFileOption = ".env",
) -> None:
    """Keep synchronizing and log the offset until interrupted."""
    settings = _load_settings(env_file, log_level, log_format)
    _apply_hosts_file(settings, hosts_file)
    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(watch(settings, interval=interval))
    except Exception as exc:
        logger.error("Runtime error: %s", exc)
        raise typer.Exit(EXIT_RUNTIME_ERROR) from exc


@cli.command("hosts")
def hosts_command(
    resolve: Annotated[
        bool,
        typer.Option("--resolve", help="Also resolve each host."),
    ] = False,
    hosts_file: HostsFileOption = None,
    log_level: LogLevelOption = None,
    log_format: LogFormatOption = None,
    env_file: EnvFileOption = ".env",
) -> None:
    """Print the effective host list."""
    settings = _load_settings(env_file, log_level, log_format)
    _apply_hosts_file(settings, hosts_file)
    names = parse_host_list(resolve_hosts(settings.sync))

    if not resolve:
        for name in names:
            typer.echo(name)
        return

    resolver = SystemResolver(port=settings.peer.port)
    for host, addresses, error in asyncio.run(resolve_all(names, resolver)):
        if error is not None:
            typer.echo(f"{host}: unresolved ({error})")
        else:
            typer.echo(f"{host}: {', '.join(addresses) or '-'}")


def main() -> None:
    """Console-script entry point."""
    cli()
