"""
sowing_plc

Modbus-TCP request/response engine for the sowing-wall PLC.

Example::

    from sowing_plc import ModbusTCPClient, PlcSettings

    async with ModbusTCPClient(PlcSettings(host="192.168.1.10")) as client:
        values = await client.read_holding_registers(0x10, 4)
        await client.write_single_register(0x20, 0xFF)
"""
from sowing_plc.com.core.exceptions import (
    CommunicationError,
    ProtocolError,
    InvalidArgumentError,
    FrameError,
    MalformedResponseError,
    UnexpectedFunctionCodeError,
    TransportError,
    NotConnectedError,
    ConnectionClosedError,
    RequestTimeoutError,
    RequestCancelledError,
    DeviceExceptionError,
)
from sowing_plc.com.core.types import (
    ConnectionState,
    DeviceExceptionKind,
    FunctionCode,
)
from sowing_plc.com.industrial.modbus.settings import (
    PlcSettings,
    env_settings_provider,
    load_settings,
)
from sowing_plc.com.industrial.modbus.tcp.client import ModbusTCPClient

__all__ = [
    "ModbusTCPClient",
    "PlcSettings",
    "load_settings",
    "env_settings_provider",
    "ConnectionState",
    "DeviceExceptionKind",
    "FunctionCode",
    "CommunicationError",
    "ProtocolError",
    "InvalidArgumentError",
    "FrameError",
    "MalformedResponseError",
    "UnexpectedFunctionCodeError",
    "TransportError",
    "NotConnectedError",
    "ConnectionClosedError",
    "RequestTimeoutError",
    "RequestCancelledError",
    "DeviceExceptionError",
]
