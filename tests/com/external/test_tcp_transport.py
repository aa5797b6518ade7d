"""
Integration tests for the asyncio TCP frame transport and the client on top.

These tests use loopback (127.0.0.1) connections and are marked as
``integration`` because they require an available TCP stack.
"""
import asyncio
import struct

import pytest

from sowing_plc.com.core.exceptions import ConnectFailedError, ConnectionClosedError, NotConnectedError
from sowing_plc.com.external.tcp.tcp_client import AsyncTcpFrameTransport
from sowing_plc.com.industrial.modbus.settings import PlcSettings
from sowing_plc.com.industrial.modbus.tcp.client import ModbusTCPClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _free_port() -> int:
    """Return a free TCP port on 127.0.0.1."""
    import socket
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class FakePlc:
    """Minimal Modbus-TCP slave: FC 0x03 returns ``address + offset``, FC 0x06 echoes."""

    def __init__(self, port: int, hold_writes: bool = False):
        self.port = port
        self.hold_writes = hold_writes
        self.requests = []
        self._server = None
        self._writers = []

    async def start(self):
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", self.port)

    async def stop(self):
        await self.drop_clients()
        self._server.close()
        await self._server.wait_closed()

    async def drop_clients(self):
        for writer in self._writers:
            writer.close()
        self._writers.clear()

    async def _handle(self, reader, writer):
        self._writers.append(writer)
        try:
            while True:
                header = await reader.readexactly(7)
                tid, _, length, unit = struct.unpack(">HHHB", header)
                pdu = await reader.readexactly(length - 1)
                self.requests.append(header + pdu)
                response = self._respond(pdu)
                if response is None:
                    continue
                writer.write(struct.pack(">HHHB", tid, 0, len(response) + 1, unit) + response)
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass

    def _respond(self, pdu: bytes):
        function_code = pdu[0]
        if function_code == 0x03:
            address, quantity = struct.unpack_from(">HH", pdu, 1)
            values = [(address + i) & 0xFFFF for i in range(quantity)]
            return struct.pack(f">BB{quantity}H", 0x03, quantity * 2, *values)
        if function_code == 0x06:
            return None if self.hold_writes else pdu
        return bytes([function_code | 0x80, 0x01])


# ---------------------------------------------------------------------------
# AsyncTcpFrameTransport
# ---------------------------------------------------------------------------

@pytest.mark.integration
class TestAsyncTcpFrameTransport:
    """Frame transport against a real loopback server."""

    @pytest.mark.asyncio
    async def test_frames_and_state_reported(self):
        port = _free_port()
        plc = FakePlc(port)
        await plc.start()
        frames, states = [], []
        try:
            transport = AsyncTcpFrameTransport("127.0.0.1", port)
            transport.subscribe(frames.append, states.append)
            await transport.connect(timeout=2.0)
            assert transport.is_connected
            assert states == [True]

            await transport.send(bytes.fromhex("0001 0000 0006 01 03 0000 0002"))
            for _ in range(200):
                if frames:
                    break
                await asyncio.sleep(0.01)
            assert frames == [bytes.fromhex("0001 0000 0007 01 03 04 0000 0001")]

            await transport.close()
            assert states == [True, False]
            assert not transport.is_connected
        finally:
            await plc.stop()

    @pytest.mark.asyncio
    async def test_peer_close_reported(self):
        port = _free_port()
        plc = FakePlc(port)
        await plc.start()
        states = []
        try:
            transport = AsyncTcpFrameTransport("127.0.0.1", port)
            transport.subscribe(lambda frame: None, states.append)
            await transport.connect(timeout=2.0)
            await asyncio.sleep(0.05)

            await plc.drop_clients()
            for _ in range(200):
                if len(states) == 2:
                    break
                await asyncio.sleep(0.01)
            assert states == [True, False]
            await transport.close()
        finally:
            await plc.stop()

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        transport = AsyncTcpFrameTransport("127.0.0.1", _free_port())
        with pytest.raises(ConnectFailedError):
            await transport.connect(timeout=2.0)
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_close_while_connecting(self):
        port = _free_port()
        plc = FakePlc(port)
        await plc.start()
        states = []
        try:
            transport = AsyncTcpFrameTransport("127.0.0.1", port)
            transport.subscribe(lambda frame: None, states.append)
            task = asyncio.create_task(transport.connect(timeout=2.0))
            await asyncio.sleep(0)
            await transport.close()

            with pytest.raises(ConnectFailedError):
                await task
            assert not transport.is_connected
            assert states == []
        finally:
            await plc.stop()

    @pytest.mark.asyncio
    async def test_send_when_closed(self):
        transport = AsyncTcpFrameTransport("127.0.0.1", _free_port())
        with pytest.raises(NotConnectedError):
            await transport.send(b"\x00")


# ---------------------------------------------------------------------------
# ModbusTCPClient end to end
# ---------------------------------------------------------------------------

@pytest.mark.integration
class TestModbusTcpClientLoopback:
    """Full request/response cycle through a real socket."""

    @pytest.mark.asyncio
    async def test_read_and_write(self):
        port = _free_port()
        plc = FakePlc(port)
        await plc.start()
        try:
            settings = PlcSettings(host="127.0.0.1", port=port, request_timeout=2.0)
            async with ModbusTCPClient(settings) as client:
                assert await client.read_holding_registers(0x0010, 4) == [0x10, 0x11, 0x12, 0x13]
                await client.write_single_register(0x0020, 0x00FF)

                results = await asyncio.gather(
                    *(client.read_holding_registers(i * 10, 2) for i in range(10))
                )
                assert results == [[i * 10, i * 10 + 1] for i in range(10)]
                assert client.pending_count == 0
        finally:
            await plc.stop()

    @pytest.mark.asyncio
    async def test_connection_lost_fails_pending(self):
        port = _free_port()
        plc = FakePlc(port, hold_writes=True)
        await plc.start()
        try:
            settings = PlcSettings(host="127.0.0.1", port=port, request_timeout=5.0)
            async with ModbusTCPClient(settings) as client:
                task = asyncio.create_task(client.write_single_register(1, 2))
                for _ in range(200):
                    if plc.requests:
                        break
                    await asyncio.sleep(0.01)

                await plc.drop_clients()

                with pytest.raises(ConnectionClosedError):
                    await asyncio.wait_for(task, timeout=2.0)
                assert client.pending_count == 0

                assert await client.connect() is True
                assert await client.read_holding_registers(5, 1) == [5]
        finally:
            await plc.stop()
