"""
Async TCP frame transport for Modbus-TCP.

Reads the byte stream, cuts it into MBAP frames and hands every frame to the
subscribed callback. Connection state flips are reported the same way.

Example::

    transport = AsyncTcpFrameTransport(host="10.0.0.1", port=502)
    transport.subscribe(on_frame, on_state)
    await transport.connect(timeout=5.0)
    await transport.send(frame)
    await transport.close()
"""
from __future__ import annotations

import asyncio
import logging
import struct
from typing import Any, Optional

from sowing_plc.com.core.exceptions import ConnectFailedError, NotConnectedError
from sowing_plc.com.core.interfaces import AbstractFrameTransport

logger = logging.getLogger(__name__)

_PREFIX = struct.Struct(">HHH")
# unit id + function code at least, 253 byte PDU + unit id at most
_MIN_LENGTH_FIELD = 2
_MAX_LENGTH_FIELD = 254


class AsyncTcpFrameTransport(AbstractFrameTransport):
    """Asyncio stream transport delivering complete Modbus-TCP ADUs.

    Reconnection is not handled here; the connection manager builds a new
    transport for every connection attempt.

    :param host: Remote host name or IP address.
    :type host: str
    :param port: Remote TCP port.
    :type port: int
    """

    def __init__(self, host: str, port: int):
        super().__init__()
        self._host = host
        self._port = port
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._connected: bool = False
        self._closed: bool = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        """``True`` when an active connection is established."""
        return self._connected and self._writer is not None

    @property
    def remote_address(self) -> str:
        """Human-readable ``host:port`` string."""
        return f"{self._host}:{self._port}"

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def connect(self, timeout: float) -> None:
        """Open a TCP connection to *host:port* and start the reader loop.

        :raises ConnectFailedError: When the connection attempt fails.
        """
        if self._closed:
            raise ConnectFailedError(self.remote_address, "transport has been closed")
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, OSError) as exc:
            self._connected = False
            raise ConnectFailedError(
                self.remote_address, str(exc) or type(exc).__name__, exc
            ) from exc

        if self._closed:
            await self._close_writer()
            raise ConnectFailedError(self.remote_address, "transport closed while connecting")

        self._connected = True
        logger.info("✅ TCP connected to %s", self.remote_address)
        self._reader_task = asyncio.create_task(
            self._read_loop(), name=f"modbus-reader-{self.remote_address}"
        )
        self._emit_connection_state(True)

    async def close(self) -> None:
        """Close the connection gracefully."""
        if self._closed:
            return
        self._closed = True
        was_connected = self._connected
        self._connected = False

        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_writer()
        logger.info("🔌 TCP connection to %s closed.", self.remote_address)
        if was_connected:
            self._emit_connection_state(False)

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send(self, data: bytes) -> None:
        """Send one frame.

        :raises NotConnectedError: When no connection is open.
        :raises OSError: When the write fails.
        """
        if not self.is_connected:
            raise NotConnectedError(self.remote_address)
        self._writer.write(data)  # type: ignore[union-attr]
        await self._writer.drain()  # type: ignore[union-attr]

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def _read_frame(self) -> bytes:
        prefix = await self._reader.readexactly(_PREFIX.size)  # type: ignore[union-attr]
        _, _, length = _PREFIX.unpack(prefix)
        if not _MIN_LENGTH_FIELD <= length <= _MAX_LENGTH_FIELD:
            raise ValueError(f"implausible MBAP length field {length}")
        body = await self._reader.readexactly(length)  # type: ignore[union-attr]
        return prefix + body

    async def _read_loop(self) -> None:
        try:
            while True:
                frame = await self._read_frame()
                try:
                    self._emit_frame(frame)
                except Exception:
                    logger.exception("❌ Frame handler failed for %s", self.remote_address)
        except asyncio.IncompleteReadError:
            logger.warning("⚠️ TCP connection to %s closed by peer", self.remote_address)
        except ValueError as exc:
            logger.error("❌ Unrecoverable stream from %s: %s", self.remote_address, exc)
        except OSError as exc:
            logger.warning("⚠️ TCP receive from %s failed: %s", self.remote_address, exc)
        await self._connection_lost()

    async def _connection_lost(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._reader_task = None
        await self._close_writer()
        self._emit_connection_state(False)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _close_writer(self) -> None:
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except OSError as exc:
            logger.debug("Ignoring error while closing %s: %s", self.remote_address, exc)

    async def __aenter__(self) -> "AsyncTcpFrameTransport":
        await self.connect(timeout=10.0)
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
