"""
Modbus TCP Client

Request executor for the sowing-wall PLC. Many tasks may issue requests
concurrently over the one TCP stream; responses are matched to requests by
transaction id and may arrive in any order.

Example:
    >>> client = ModbusTCPClient(PlcSettings(host="192.168.1.10"))
    >>> await client.connect()
    >>> values = await client.read_holding_registers(start_address=0x10, quantity=4)
    >>> await client.write_single_register(address=0x20, value=0xFF)
    >>> await client.shutdown()
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Union

from sowing_plc.com.core.exceptions import (
    ConnectionClosedError,
    FrameError,
    MalformedResponseError,
    NotConnectedError,
    RequestCancelledError,
    RequestTimeoutError,
)
from sowing_plc.com.core.types import ConnectionState, FunctionCode
from sowing_plc.com.industrial.modbus import codec
from sowing_plc.com.industrial.modbus.connection import (
    ConnectionLifecycleManager,
    TransportFactory,
    tcp_transport_factory,
)
from sowing_plc.com.industrial.modbus.registry import TransactionRegistry
from sowing_plc.com.industrial.modbus.settings import (
    PlcSettings,
    SettingsProvider,
    static_settings_provider,
)
from sowing_plc.helper.error_handler import ErrorTraceback

logger = logging.getLogger(__name__)


class ModbusTCPClient:
    """
    Modbus TCP master for the sowing-wall PLC.

    Features:
    - FC 0x03 read holding registers, FC 0x06 write single register
    - Concurrent requests multiplexed by transaction id
    - Per-request timeout, connection loss fails every pending request
    - Settings reloaded before every connect attempt
    - No retries: every call sends exactly one frame

    Args:
        settings: Fixed settings snapshot or a provider called per connect.
        transport_factory: Builds the frame transport for each connect attempt.
        strict_write_echo: Raise MalformedResponseError when a write echo
            differs from the request instead of only logging it.
        registry: Transaction registry, a fresh one by default.
    """

    def __init__(
        self,
        settings: Union[PlcSettings, SettingsProvider],
        transport_factory: TransportFactory = tcp_transport_factory,
        strict_write_echo: bool = False,
        registry: Optional[TransactionRegistry] = None,
    ):
        if isinstance(settings, PlcSettings):
            settings = static_settings_provider(settings)
        self._settings_provider = settings
        self._strict_write_echo = strict_write_echo
        self._registry = registry if registry is not None else TransactionRegistry()
        self._connection = ConnectionLifecycleManager(
            settings_provider=settings,
            registry=self._registry,
            frame_handler=self._handle_frame,
            transport_factory=transport_factory,
        )
        self._shutdown = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def pending_count(self) -> int:
        """Number of requests currently waiting for a response."""
        return len(self._registry)

    @property
    def connection(self) -> ConnectionLifecycleManager:
        return self._connection

    @property
    def registry(self) -> TransactionRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @ErrorTraceback.w_check_error_exist
    async def connect(self) -> bool:
        """Connect to the PLC. Returns ``True`` when connected afterwards."""
        if self._shutdown:
            return False
        return await self._connection.connect()

    @ErrorTraceback.w_check_error_exist
    async def disconnect(self) -> None:
        """Disconnect; pending requests fail with ConnectionClosedError."""
        await self._connection.disconnect()

    @ErrorTraceback.w_check_error_exist
    async def shutdown(self) -> None:
        """
        Stop the client for good.

        Pending and later requests fail with RequestCancelledError.
        """
        if self._shutdown:
            return
        logger.debug("Shutting down Modbus TCP client")
        self._shutdown = True
        self._registry.drain_all(RequestCancelledError("client shut down"))
        await self._connection.close()

    # ------------------------------------------------------------------
    # Register operations
    # ------------------------------------------------------------------

    async def read_holding_registers(
        self,
        start_address: int,
        quantity: int,
        timeout: Optional[float] = None,
    ) -> List[int]:
        """
        Read holding registers (0x03).

        Args:
            start_address: First register address
            quantity: Number of registers, 1..125
            timeout: Seconds to wait for the response, defaults to the
                configured request timeout

        Returns:
            List of register values (16-bit unsigned integers)

        Raises:
            InvalidArgumentError, NotConnectedError, ConnectionClosedError,
            RequestTimeoutError, RequestCancelledError, DeviceExceptionError,
            UnexpectedFunctionCodeError, MalformedResponseError
        """
        payload = codec.build_read_holding_registers_payload(start_address, quantity)
        logger.debug("📖 Reading %d holding registers from 0x%04X", quantity, start_address)

        pdu = await self._execute(FunctionCode.READ_HOLDING_REGISTERS, payload, timeout)
        return codec.decode_read_registers_response(
            pdu, FunctionCode.READ_HOLDING_REGISTERS, quantity
        )

    async def write_single_register(
        self,
        address: int,
        value: int,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Write single holding register (0x06).

        An echo that differs from the request is logged as a warning and
        still counts as success unless the client was created with
        ``strict_write_echo=True``.

        Args:
            address: Register address
            value: Register value (16-bit unsigned integer)
            timeout: Seconds to wait for the response
        """
        payload = codec.build_write_single_register_payload(address, value)
        logger.debug("✍️  Writing register 0x%04X = 0x%04X", address, value)

        pdu = await self._execute(FunctionCode.WRITE_SINGLE_REGISTER, payload, timeout)
        echoed = codec.decode_write_register_response(pdu, address, value)
        if not echoed and self._strict_write_echo:
            raise MalformedResponseError("write echo does not match request", pdu)

    # ------------------------------------------------------------------
    # Request orchestration
    # ------------------------------------------------------------------

    async def _execute(
        self,
        function_code: int,
        payload: bytes,
        timeout: Optional[float],
    ) -> bytes:
        """Send one request and return the matching response PDU."""
        if self._shutdown:
            raise RequestCancelledError("client shut down")
        if not self._connection.is_connected:
            raise NotConnectedError(self._connection.endpoint)

        settings = self._connection.settings
        if timeout is None:
            timeout = settings.request_timeout if settings else PlcSettings().request_timeout
        unit_id = settings.unit_id if settings else PlcSettings().unit_id

        transaction_id = self._registry.next_id()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._registry.register(transaction_id, future)

        # A drain may have run between the connection check and registration.
        if not self._connection.is_connected:
            self._registry.try_reject(
                transaction_id, NotConnectedError(self._connection.endpoint)
            )
            return future.result()

        frame = codec.encode_request(transaction_id, unit_id, function_code, payload)
        logger.debug(
            "Sending Modbus request TID=%d, FC=0x%02X, payload=%d bytes",
            transaction_id, function_code, len(payload),
        )

        try:
            await self._connection.send(frame)
        except (NotConnectedError, OSError) as exc:
            logger.error("❌ Sending Modbus request TID=%d failed: %s", transaction_id, exc)
            self._registry.try_reject(
                transaction_id,
                ConnectionClosedError(self._connection.endpoint, f"send failed: {exc}"),
            )
            return future.result()
        except Exception as exc:
            logger.error("❌ Sending Modbus request TID=%d failed: %s", transaction_id, exc)
            self._registry.try_reject(transaction_id, exc)
            return future.result()
        except BaseException:
            # Cancellation or interpreter exit while writing.
            self._registry.try_reject(transaction_id, RequestCancelledError("caller cancelled"))
            if future.done() and not future.cancelled():
                future.exception()
            raise

        try:
            pdu = await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            if self._registry.try_reject(
                transaction_id, RequestTimeoutError(transaction_id, timeout)
            ):
                logger.error(
                    "❌ Modbus request TID=%d timed out after %.3fs", transaction_id, timeout
                )
            # Whichever path removed the entry has completed the future by now.
            return future.result()
        except asyncio.CancelledError:
            self._registry.try_reject(transaction_id, RequestCancelledError("caller cancelled"))
            if future.done() and not future.cancelled():
                future.exception()
            raise

        logger.debug("Received Modbus response TID=%d", transaction_id)
        return pdu

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    def _handle_frame(self, frame: bytes) -> None:
        try:
            decoded = codec.decode_frame(frame)
        except FrameError as exc:
            logger.warning("⚠️ Dropping invalid Modbus frame (%d bytes): %s", len(frame), exc)
            return

        settings = self._connection.settings
        if settings is not None and decoded.unit_id != settings.unit_id:
            logger.debug(
                "Response TID=%d from unit %d, expected unit %d",
                decoded.transaction_id, decoded.unit_id, settings.unit_id,
            )

        if not self._registry.try_resolve(decoded.transaction_id, decoded.pdu):
            logger.warning(
                "⚠️ Response for unknown or late transaction id %d", decoded.transaction_id
            )

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "ModbusTCPClient":
        """Async context manager entry."""
        if not await self.connect():
            raise NotConnectedError(self._connection.endpoint)
        return self

    async def __aexit__(self, *_: Any) -> None:
        """Async context manager exit."""
        await self.shutdown()
