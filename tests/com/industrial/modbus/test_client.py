"""
Unit tests for the Modbus TCP request executor.

All tests run against the in-memory FakeTransport; responses are injected
the way the transport's reader task would deliver them.
"""
import asyncio
import logging
import struct

import pytest
import pytest_asyncio

from fakes import (
    FakeTransportFactory,
    build_response,
    read_response_pdu,
    transaction_id_of,
    write_response_pdu,
)
from sowing_plc.com.core.exceptions import (
    ConnectionClosedError,
    DeviceExceptionError,
    InvalidArgumentError,
    MalformedResponseError,
    NotConnectedError,
    RequestCancelledError,
    RequestTimeoutError,
    UnexpectedFunctionCodeError,
)
from sowing_plc.com.core.types import ConnectionState, DeviceExceptionKind
from sowing_plc.com.industrial.modbus.settings import PlcSettings
from sowing_plc.com.industrial.modbus.tcp.client import ModbusTCPClient


@pytest_asyncio.fixture
async def client(plc_settings, transport_factory):
    client = ModbusTCPClient(plc_settings, transport_factory=transport_factory)
    assert await client.connect()
    yield client
    await client.shutdown()


async def _sent_request(transport, index: int = 0) -> bytes:
    sent = await transport.wait_sent(index + 1)
    return sent[index]


@pytest.mark.unit
class TestReadHoldingRegisters:
    """Test FC 0x03 request/response handling"""

    @pytest.mark.asyncio
    async def test_read_four_registers(self, client, transport_factory):
        transport = transport_factory.last
        task = asyncio.create_task(client.read_holding_registers(0x0010, 4))

        request = await _sent_request(transport)
        assert request[2:] == bytes.fromhex("0000 0006 01 03 0010 0004")
        transport.inject(
            build_response(transaction_id_of(request), bytes.fromhex("03 08 0001 0002 0003 0004"))
        )

        assert await task == [1, 2, 3, 4]
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_device_exception(self, client, transport_factory):
        transport = transport_factory.last
        task = asyncio.create_task(client.read_holding_registers(0x0010, 4))

        request = await _sent_request(transport)
        transport.inject(build_response(transaction_id_of(request), bytes.fromhex("83 02")))

        with pytest.raises(DeviceExceptionError) as exc_info:
            await task
        assert exc_info.value.kind is DeviceExceptionKind.ILLEGAL_ADDRESS
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_function_code_surfaces(self, client, transport_factory):
        transport = transport_factory.last
        task = asyncio.create_task(client.read_holding_registers(0, 1))

        request = await _sent_request(transport)
        transport.inject(build_response(transaction_id_of(request), write_response_pdu(0, 1)))

        with pytest.raises(UnexpectedFunctionCodeError):
            await task

    @pytest.mark.asyncio
    async def test_unit_id_in_request(self, transport_factory):
        settings = PlcSettings(host="127.0.0.1", unit_id=17)
        client = ModbusTCPClient(settings, transport_factory=transport_factory)
        await client.connect()
        try:
            task = asyncio.create_task(client.read_holding_registers(0, 1))
            request = await _sent_request(transport_factory.last)
            assert request[6] == 17

            # a different unit id in the response still resolves the transaction
            transport_factory.last.inject(
                build_response(transaction_id_of(request), read_response_pdu([5]), unit_id=3)
            )
            assert await task == [5]
        finally:
            await client.shutdown()


@pytest.mark.unit
class TestWriteSingleRegister:
    """Test FC 0x06 request/response handling"""

    @pytest.mark.asyncio
    async def test_write_echo_matches(self, client, transport_factory):
        transport = transport_factory.last
        task = asyncio.create_task(client.write_single_register(0x0020, 0x00FF))

        request = await _sent_request(transport)
        assert request[7:] == bytes.fromhex("06 0020 00FF")
        transport.inject(build_response(transaction_id_of(request), write_response_pdu(0x20, 0xFF)))

        assert await task is None

    @pytest.mark.asyncio
    async def test_write_echo_mismatch_is_logged(self, client, transport_factory, caplog):
        transport = transport_factory.last
        task = asyncio.create_task(client.write_single_register(0x0020, 0x00FF))

        request = await _sent_request(transport)
        with caplog.at_level(logging.WARNING):
            transport.inject(build_response(transaction_id_of(request), write_response_pdu(0x20, 0x00)))
            assert await task is None
        assert "echo mismatch" in caplog.text

    @pytest.mark.asyncio
    async def test_strict_write_echo(self, plc_settings, transport_factory):
        client = ModbusTCPClient(plc_settings, transport_factory=transport_factory, strict_write_echo=True)
        await client.connect()
        try:
            task = asyncio.create_task(client.write_single_register(0x0020, 0x00FF))
            request = await _sent_request(transport_factory.last)
            transport_factory.last.inject(
                build_response(transaction_id_of(request), write_response_pdu(0x20, 0x00))
            )
            with pytest.raises(MalformedResponseError):
                await task
        finally:
            await client.shutdown()


@pytest.mark.unit
class TestConcurrency:
    """Test multiplexing of concurrent requests"""

    @pytest.mark.asyncio
    async def test_out_of_order_responses(self, client, transport_factory):
        transport = transport_factory.last
        first = asyncio.create_task(client.read_holding_registers(0x0010, 2))
        second = asyncio.create_task(client.read_holding_registers(0x0100, 3))

        sent = await transport.wait_sent(2)
        by_address = {struct.unpack_from(">H", frame, 8)[0]: transaction_id_of(frame) for frame in sent}

        transport.inject(build_response(by_address[0x0100], read_response_pdu([7, 8, 9])))
        transport.inject(build_response(by_address[0x0010], read_response_pdu([1, 2])))

        assert await first == [1, 2]
        assert await second == [7, 8, 9]

    @pytest.mark.asyncio
    async def test_transaction_ids_distinct(self, client, transport_factory):
        transport = transport_factory.last
        tasks = [asyncio.create_task(client.read_holding_registers(i, 1)) for i in range(20)]

        sent = await transport.wait_sent(20)
        ids = [transaction_id_of(frame) for frame in sent]
        assert len(set(ids)) == 20
        assert client.pending_count == 20

        for frame in sent:
            address = struct.unpack_from(">H", frame, 8)[0]
            transport.inject(build_response(transaction_id_of(frame), read_response_pdu([address])))

        assert await asyncio.gather(*tasks) == [[i] for i in range(20)]
        assert client.pending_count == 0


@pytest.mark.unit
class TestFailurePaths:
    """Test that every failure path resolves the caller exactly once"""

    @pytest.mark.asyncio
    async def test_connection_closed_mid_flight(self, client, transport_factory):
        transport = transport_factory.last
        task = asyncio.create_task(client.read_holding_registers(0x0010, 4))
        request = await _sent_request(transport)

        transport.drop()

        with pytest.raises(ConnectionClosedError):
            await task
        assert client.pending_count == 0
        assert client.state is ConnectionState.DISCONNECTED

        # a late response for the drained request is ignored
        transport.inject(build_response(transaction_id_of(request), read_response_pdu([1, 2, 3, 4])))
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_all_pending_fail_on_disconnect(self, client, transport_factory):
        transport = transport_factory.last
        tasks = [asyncio.create_task(client.read_holding_registers(i, 1)) for i in range(10)]
        await transport.wait_sent(10)

        await client.disconnect()

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(result, ConnectionClosedError) for result in results)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.read_holding_registers(0, 1, timeout=0.1)

        elapsed = loop.time() - started
        # loop timers may fire within clock resolution of the deadline
        assert 0.099 <= elapsed < 0.6
        assert exc_info.value.timeout == 0.1
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_ignored(self, client, transport_factory, caplog):
        transport = transport_factory.last
        with pytest.raises(RequestTimeoutError):
            await client.read_holding_registers(0, 1, timeout=0.05)

        with caplog.at_level(logging.WARNING):
            transport.inject(build_response(transaction_id_of(transport.sent[0]), read_response_pdu([1])))
        assert "unknown or late transaction id" in caplog.text

    @pytest.mark.asyncio
    async def test_default_timeout_from_settings(self, transport_factory):
        settings = PlcSettings(host="127.0.0.1", request_timeout=0.05)
        client = ModbusTCPClient(settings, transport_factory=transport_factory)
        await client.connect()
        try:
            with pytest.raises(RequestTimeoutError) as exc_info:
                await client.write_single_register(1, 1)
            assert exc_info.value.timeout == 0.05
        finally:
            await client.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_frame_does_not_resolve(self, client, transport_factory):
        transport = transport_factory.last
        task = asyncio.create_task(client.read_holding_registers(0, 1, timeout=0.1))
        request = await _sent_request(transport)

        transport.inject(build_response(transaction_id_of(request), read_response_pdu([1]), protocol_id=5))
        transport.inject(b"\x00\x01")

        with pytest.raises(RequestTimeoutError):
            await task

    @pytest.mark.asyncio
    async def test_caller_cancellation_cleans_up(self, client, transport_factory):
        task = asyncio.create_task(client.read_holding_registers(0, 1, timeout=5.0))
        await transport_factory.last.wait_sent(1)
        assert client.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_send_failure(self, plc_settings):
        factory = FakeTransportFactory(send_error=OSError("broken pipe"))
        client = ModbusTCPClient(plc_settings, transport_factory=factory)
        await client.connect()
        try:
            with pytest.raises(ConnectionClosedError):
                await client.read_holding_registers(0, 1)
            assert client.pending_count == 0
        finally:
            await client.shutdown()

    @pytest.mark.asyncio
    async def test_send_failure_with_transport_error(self, plc_settings):
        factory = FakeTransportFactory(
            send_error=ConnectionClosedError("127.0.0.1:5020", "connection reset")
        )
        client = ModbusTCPClient(plc_settings, transport_factory=factory)
        await client.connect()
        try:
            with pytest.raises(ConnectionClosedError, match="connection reset"):
                await client.read_holding_registers(0, 1)
            assert client.pending_count == 0
        finally:
            await client.shutdown()

    @pytest.mark.asyncio
    async def test_not_connected(self, plc_settings, transport_factory):
        client = ModbusTCPClient(plc_settings, transport_factory=transport_factory)

        with pytest.raises(NotConnectedError):
            await client.read_holding_registers(0, 1)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_invalid_argument_before_io(self, client, transport_factory):
        with pytest.raises(InvalidArgumentError):
            await client.read_holding_registers(0, 126)
        with pytest.raises(InvalidArgumentError):
            await client.write_single_register(0, 0x10000)
        assert transport_factory.last.sent == []


@pytest.mark.unit
class TestLifecycle:
    """Test connect, reconnect and shutdown of the client"""

    @pytest.mark.asyncio
    async def test_reconnect_after_loss(self, client, transport_factory):
        transport_factory.last.drop()
        assert not client.is_connected

        assert await client.connect() is True
        task = asyncio.create_task(client.read_holding_registers(0, 1))
        request = await _sent_request(transport_factory.last)
        transport_factory.last.inject(build_response(transaction_id_of(request), read_response_pdu([42])))
        assert await task == [42]
        assert len(transport_factory.transports) == 2

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self, plc_settings, transport_factory):
        client = ModbusTCPClient(plc_settings, transport_factory=transport_factory)
        await client.connect()
        task = asyncio.create_task(client.read_holding_registers(0, 1))
        await transport_factory.last.wait_sent(1)

        await client.shutdown()

        with pytest.raises(RequestCancelledError):
            await task
        with pytest.raises(RequestCancelledError):
            await client.read_holding_registers(0, 1)
        assert await client.connect() is False
        assert client.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_shutdown_during_connect(self, plc_settings):
        factory = FakeTransportFactory(connect_delay=0.1)
        client = ModbusTCPClient(plc_settings, transport_factory=factory)

        task = asyncio.create_task(client.connect())
        await asyncio.sleep(0.02)
        await client.shutdown()

        assert await task is False
        assert not client.is_connected
        assert client.state is ConnectionState.DISCONNECTED
        assert factory.last.closed

    @pytest.mark.asyncio
    async def test_context_manager(self, plc_settings, transport_factory):
        async with ModbusTCPClient(plc_settings, transport_factory=transport_factory) as client:
            assert client.is_connected
        assert not client.is_connected
        assert transport_factory.last.closed

    @pytest.mark.asyncio
    async def test_context_manager_connect_failure(self, plc_settings):
        factory = FakeTransportFactory(fail_connect=True)
        with pytest.raises(NotConnectedError):
            async with ModbusTCPClient(plc_settings, transport_factory=factory):
                pass
