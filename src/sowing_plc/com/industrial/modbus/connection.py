"""
Connection Lifecycle Manager

Owns the single logical PLC connection::

    DISCONNECTED --connect()--> CONNECTING --success--> CONNECTED
    CONNECTING   --failure----> DISCONNECTED
    CONNECTED    --transport reports loss / disconnect()--> DISCONNECTED

Only one connect attempt runs at a time. Concurrent callers wait on the
running attempt's own outcome instead of starting a second one. Every
transition into DISCONNECTED from CONNECTED fails all pending transactions
exactly once.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Callable, Optional

from sowing_plc.com.core.exceptions import (
    ConnectionClosedError,
    NotConnectedError,
    TransportError,
)
from sowing_plc.com.core.interfaces import AbstractFrameTransport
from sowing_plc.com.core.types import ConnectionState
from sowing_plc.com.external.tcp.tcp_client import AsyncTcpFrameTransport
from sowing_plc.com.industrial.modbus.registry import TransactionRegistry
from sowing_plc.com.industrial.modbus.settings import PlcSettings, SettingsProvider

logger = logging.getLogger(__name__)

TransportFactory = Callable[[PlcSettings], AbstractFrameTransport]
FrameHandler = Callable[[bytes], None]

# Lower bound for how long a caller waits on someone else's connect attempt.
MIN_CONNECT_WAIT = 1.0
# Added on top of the connect timeout: the attempt also releases the old
# transport and reloads settings before its own deadline starts.
CONNECT_WAIT_GRACE = 1.0


def tcp_transport_factory(settings: PlcSettings) -> AbstractFrameTransport:
    return AsyncTcpFrameTransport(settings.host, settings.port)


class ConnectionLifecycleManager:
    """
    Serializes connect attempts and supervises the active transport.

    :param settings_provider: Called before every connect attempt.
    :param registry: Registry drained whenever the connection is lost.
    :param frame_handler: Receives every inbound frame of the active transport.
    :param transport_factory: Builds a fresh transport per attempt.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        registry: TransactionRegistry,
        frame_handler: FrameHandler,
        transport_factory: TransportFactory = tcp_transport_factory,
    ):
        self._settings_provider = settings_provider
        self._registry = registry
        self._frame_handler = frame_handler
        self._transport_factory = transport_factory

        self._state = ConnectionState.DISCONNECTED
        self._settings: Optional[PlcSettings] = None
        self._transport: Optional[AbstractFrameTransport] = None
        self._transport_connected = False
        self._gate = asyncio.Lock()
        self._attempt: Optional[asyncio.Future] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._state is ConnectionState.CONNECTED
            and self._transport is not None
            and self._transport.is_connected
        )

    @property
    def settings(self) -> Optional[PlcSettings]:
        """Settings snapshot used by the latest connect attempt."""
        return self._settings

    @property
    def endpoint(self) -> Optional[str]:
        return self._settings.endpoint if self._settings else None

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Connect to the PLC unless already connected.

        :return: ``True`` when the connection is up afterwards.
        """
        if self.is_connected:
            return True
        if self._closed:
            logger.warning("⚠️ Connection manager is closed, not connecting")
            return False

        attempt = self._attempt
        if attempt is not None:
            return await self._wait_for_attempt(attempt)

        async with self._gate:
            if self.is_connected:
                return True
            if self._closed:
                return False

            attempt = asyncio.get_running_loop().create_future()
            self._attempt = attempt
            connected = False
            try:
                connected = await self._connect_once()
            finally:
                if self._state is ConnectionState.CONNECTING:
                    self._state = ConnectionState.DISCONNECTED
                self._attempt = None
                attempt.set_result(connected)
            return connected

    async def _wait_for_attempt(self, attempt: asyncio.Future) -> bool:
        settings = self._settings
        timeout = (
            max(settings.connect_timeout if settings else 0.0, MIN_CONNECT_WAIT)
            + CONNECT_WAIT_GRACE
        )
        logger.debug("Connect already in progress, waiting up to %.1fs for it", timeout)
        try:
            await asyncio.wait_for(asyncio.shield(attempt), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("⚠️ Gave up waiting for concurrent connect after %.1fs", timeout)
        return self.is_connected

    async def _connect_once(self) -> bool:
        self._state = ConnectionState.CONNECTING
        try:
            settings = self._settings_provider()
        except ValueError as exc:
            logger.error("❌ Invalid PLC settings, cannot connect: %s", exc)
            self._state = ConnectionState.DISCONNECTED
            return False
        self._settings = settings

        await self._release_transport()
        self._transport_connected = False

        if not settings.is_configured:
            logger.warning("⚠️ PLC host or port not configured, cannot connect")
            self._state = ConnectionState.DISCONNECTED
            return False

        logger.info(
            "🔌 Connecting to PLC %s (unit %d)...", settings.endpoint, settings.unit_id
        )
        transport = self._transport_factory(settings)
        transport.subscribe(
            functools.partial(self._on_frame_received, transport),
            functools.partial(self._on_connection_state_changed, transport),
        )
        self._transport = transport

        try:
            await asyncio.wait_for(
                transport.connect(settings.connect_timeout),
                timeout=settings.connect_timeout,
            )
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            await self._discard_transport(transport)
            raise
        except (TransportError, OSError, asyncio.TimeoutError) as exc:
            logger.error("❌ Failed to connect to PLC %s: %s", settings.endpoint, exc)
            self._state = ConnectionState.DISCONNECTED
            await self._discard_transport(transport)
            return False

        # disconnect() or close() ran while the transport was connecting.
        if transport is not self._transport or self._closed:
            logger.info("🔌 Connect to %s abandoned, disconnected meanwhile", settings.endpoint)
            self._state = ConnectionState.DISCONNECTED
            await self._discard_transport(transport)
            return False

        if not transport.is_connected:
            logger.warning("⚠️ Connect to %s finished but transport is down", settings.endpoint)
            self._state = ConnectionState.DISCONNECTED
            await self._release_transport()
            return False

        self._transport_connected = True
        self._state = ConnectionState.CONNECTED
        logger.info("✅ Connected to PLC %s", settings.endpoint)
        return True

    async def disconnect(self, reason: str = "disconnected by user") -> None:
        """Mark the connection down, release the transport, fail pending requests."""
        was_connected = self._state is not ConnectionState.DISCONNECTED
        self._state = ConnectionState.DISCONNECTED
        self._transport_connected = False
        await self._release_transport()
        self._registry.drain_all(ConnectionClosedError(self.endpoint, reason))
        if was_connected:
            logger.info("🔌 Disconnected from PLC %s", self.endpoint)

    async def close(self) -> None:
        """Disconnect for good, later :meth:`connect` calls return ``False``."""
        self._closed = True
        await self.disconnect("connection manager closed")

    async def _release_transport(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is not None:
            await transport.close()

    async def _discard_transport(self, transport: AbstractFrameTransport) -> None:
        if transport is self._transport:
            await self._release_transport()
        else:
            await transport.close()

    # ------------------------------------------------------------------
    # Transport I/O
    # ------------------------------------------------------------------

    async def send(self, frame: bytes) -> None:
        """
        Write *frame* to the active transport.

        :raises NotConnectedError: No connected transport.
        """
        transport = self._transport
        if transport is None or not self.is_connected:
            raise NotConnectedError(self.endpoint)
        await transport.send(frame)

    def _on_frame_received(self, transport: AbstractFrameTransport, frame: bytes) -> None:
        if transport is not self._transport:
            logger.debug("Dropping frame from stale transport %s", transport.remote_address)
            return
        self._frame_handler(frame)

    def _on_connection_state_changed(
        self, transport: AbstractFrameTransport, connected: bool
    ) -> None:
        if transport is not self._transport:
            return
        if connected == self._transport_connected:
            return
        self._transport_connected = connected

        logger.info(
            "PLC connection state changed to %s",
            "connected" if connected else "disconnected",
        )
        if connected:
            if self._state is ConnectionState.DISCONNECTED and not self._closed:
                self._state = ConnectionState.CONNECTED
            return

        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
            self._registry.drain_all(
                ConnectionClosedError(transport.remote_address, "PLC connection lost")
            )
