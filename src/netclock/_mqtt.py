"""MQTT transport for netclock events.

Topic layout::

    {prefix}/events/sync_complete   ← published when a cycle succeeds
    {prefix}/events/clock_changed   ← consumed; any payload triggers it

Events are notifications, not state: they are published with an empty
payload and never retained, so a late subscriber does not see a stale
``sync_complete``.

:class:`MqttClient` talks to a broker through aiomqtt (imported when
the connection loop starts, so :class:`MockMqttClient` needs no
broker library).  :class:`MqttEventBus` layers the
:class:`~netclock._events.EventBus` contract on top of either.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Protocol, runtime_checkable

from netclock._events import (
    CLOCK_CHANGED,
    SYNC_COMPLETE,
    EventHandler,
    LocalEventBus,
)
from netclock._settings import MqttSettings

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, str], Awaitable[None]]
"""Coroutine called with ``(topic, payload)`` for every inbound message."""


@runtime_checkable
class MqttPort(Protocol):
    """What the event bridge needs from a broker connection."""

    async def publish(self, topic: str, payload: str, *, qos: int = 1) -> None: ...

    async def subscribe(self, topic: str) -> None: ...

    def on_message(self, callback: MessageCallback) -> None: ...


class PublishedMessage(NamedTuple):
    """One publication recorded by :class:`MockMqttClient`."""

    topic: str
    payload: str
    qos: int


@dataclass
class MockMqttClient:
    """Broker-less :class:`MqttPort` for tests.

    Publications land in :attr:`published`, subscriptions in
    :attr:`subscriptions`; :meth:`deliver` plays an inbound message to
    the registered callbacks.
    """

    published: list[PublishedMessage] = field(default_factory=list)
    subscriptions: list[str] = field(default_factory=list)
    _callbacks: list[MessageCallback] = field(
        default_factory=list, init=False, repr=False
    )

    async def publish(self, topic: str, payload: str, *, qos: int = 1) -> None:
        self.published.append(PublishedMessage(topic, payload, qos))

    async def subscribe(self, topic: str) -> None:
        self.subscriptions.append(topic)

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    async def deliver(self, topic: str, payload: str = "") -> None:
        """Hand an inbound message to every callback, in registration order."""
        for callback in self._callbacks:
            await callback(topic, payload)

    def topics(self) -> list[str]:
        """Topics published so far, in order."""
        return [message.topic for message in self.published]


def decode_payload(payload: Any) -> str:
    """Turn an aiomqtt payload into text.

    ``None`` becomes ``""``; undecodable bytes are replaced rather than
    raised, since event topics only care that a message arrived.
    """
    if payload is None:
        return ""
    if isinstance(payload, (bytes, bytearray)):
        return payload.decode("utf-8", errors="replace")
    return str(payload)


class MqttClient:
    """:class:`MqttPort` backed by an aiomqtt connection.

    :meth:`start` runs a background task that connects, re-subscribes
    every tracked topic, and feeds inbound messages to the callbacks.
    A dropped connection is retried every
    ``settings.reconnect_interval`` seconds until :meth:`stop`.

    Args:
        settings: Broker address, credentials and QoS.
    """

    def __init__(self, settings: MqttSettings) -> None:
        self.settings = settings
        self._callbacks: list[MessageCallback] = []
        self._topics: set[str] = set()
        self._session: Any = None
        self._task: asyncio.Task[None] | None = None
        self._connected = asyncio.Event()

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"MqttClient({self.settings.host}:{self.settings.port}, {state})"

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def topics(self) -> frozenset[str]:
        """Topics restored on every (re)connect."""
        return frozenset(self._topics)

    async def publish(self, topic: str, payload: str, *, qos: int = 1) -> None:
        """Publish one non-retained message.

        Raises:
            RuntimeError: While no broker session is open.
        """
        session = self._session
        if session is None:
            msg = f"MqttClient is not connected (dropping {topic})"
            raise RuntimeError(msg)
        await session.publish(topic, payload, qos=qos, retain=False)

    async def subscribe(self, topic: str) -> None:
        """Track *topic*; subscribe now if a session is open."""
        self._topics.add(topic)
        if self._session is not None:
            await self._session.subscribe(topic, qos=self.settings.qos)

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    async def start(self) -> None:
        """Launch the connection task; a no-op while it is running."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(
            self._connection_loop(), name="netclock-mqtt"
        )

    async def stop(self) -> None:
        """Cancel the connection task and close the session.  Idempotent."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._session = None
        self._connected.clear()

    async def _connection_loop(self) -> None:
        try:
            import aiomqtt  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "MqttClient needs the aiomqtt package"
            raise RuntimeError(msg) from exc

        while True:
            try:
                await self._run_session(aiomqtt)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "Broker %s:%d unavailable (%s), retrying in %.1fs",
                    self.settings.host,
                    self.settings.port,
                    exc,
                    self.settings.reconnect_interval,
                )
                await asyncio.sleep(self.settings.reconnect_interval)

    async def _run_session(self, aiomqtt: Any) -> None:
        password = self.settings.password
        client = aiomqtt.Client(
            hostname=self.settings.host,
            port=self.settings.port,
            username=self.settings.username,
            password=password.get_secret_value() if password is not None else None,
            identifier=self.settings.client_id or None,
        )
        async with client as session:
            self._session = session
            try:
                for topic in sorted(self._topics):
                    await session.subscribe(topic, qos=self.settings.qos)
                self._connected.set()
                logger.info(
                    "Connected to broker %s:%d", self.settings.host, self.settings.port
                )
                async for message in session.messages:
                    await self._dispatch(str(message.topic), message.payload)
            finally:
                self._connected.clear()
                self._session = None

    async def _dispatch(self, topic: str, payload: Any) -> None:
        text = decode_payload(payload)
        for callback in self._callbacks:
            try:
                await callback(topic, text)
            except Exception:
                logger.exception("Message callback failed for %s", topic)


# ---------------------------------------------------------------------------
# Event bridge
# ---------------------------------------------------------------------------


class MqttEventBus:
    """Event bus that mirrors events over MQTT.

    Local subscribers work exactly as with
    :class:`~netclock._events.LocalEventBus`.  In addition, events in
    *outbound* are published to ``{prefix}/events/{event}`` and MQTT
    messages for events in *inbound* are dispatched locally.

    :meth:`publish` may be called from any thread; the MQTT publication
    is scheduled on *loop*.

    Args:
        mqtt: Broker connection.
        loop: Loop that owns *mqtt*.
        topic_prefix: Root of the event topics.
        qos: QoS for outbound publications.
        outbound: Events forwarded to the broker.
        inbound: Events accepted from the broker.

    Raises:
        ValueError: If *outbound* and *inbound* overlap.
    """

    def __init__(
        self,
        mqtt: MqttPort,
        *,
        loop: asyncio.AbstractEventLoop,
        topic_prefix: str = "netclock",
        qos: int = 1,
        outbound: Iterable[str] = (SYNC_COMPLETE,),
        inbound: Iterable[str] = (CLOCK_CHANGED,),
    ) -> None:
        self._outbound = frozenset(outbound)
        self._inbound = frozenset(inbound)
        if self._outbound & self._inbound:
            overlap = sorted(self._outbound & self._inbound)
            msg = f"Events cannot be both inbound and outbound: {overlap}"
            raise ValueError(msg)

        self._mqtt = mqtt
        self._loop = loop
        self._prefix = topic_prefix
        self._qos = qos
        self._local = LocalEventBus()
        self._pending: set[concurrent.futures.Future[None]] = set()
        mqtt.on_message(self._on_message)

    def topic_for(self, event: str) -> str:
        """MQTT topic carrying *event*."""
        return f"{self._prefix}/events/{event}"

    async def start(self) -> None:
        """Subscribe to the inbound event topics."""
        for event in sorted(self._inbound):
            await self._mqtt.subscribe(self.topic_for(event))

    # -- EventBus -----------------------------------------------------------

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._local.subscribe(event, handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        self._local.unsubscribe(event, handler)

    def publish(self, event: str) -> None:
        """Dispatch locally and, for outbound events, to the broker."""
        self._local.publish(event)
        if event in self._outbound:
            future = asyncio.run_coroutine_threadsafe(
                self._safe_publish(self.topic_for(event)), self._loop
            )
            self._pending.add(future)
            future.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for scheduled broker publications to finish."""
        while self._pending:
            await asyncio.gather(
                *(asyncio.wrap_future(f) for f in list(self._pending)),
                return_exceptions=True,
            )

    # -- Internal -----------------------------------------------------------

    async def _safe_publish(self, topic: str) -> None:
        """Publish to MQTT, swallowing any exceptions."""
        try:
            await self._mqtt.publish(topic, "", qos=self._qos)
        except Exception:
            logger.exception("Failed to publish event to %s", topic)

    async def _on_message(self, topic: str, payload: str) -> None:  # noqa: ARG002
        for event in self._inbound:
            if topic == self.topic_for(event):
                logger.debug("Received %s from MQTT", event)
                self._local.publish(event)
                return
