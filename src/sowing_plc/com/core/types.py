"""
Core Communication Types

Enumerations shared by the codec, the connection manager and the
exception hierarchy.
"""
from enum import Enum, IntEnum
from typing import Dict, Union


class ConnectionState(str, Enum):
    """Logical state of the PLC connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class FunctionCode(IntEnum):
    """Modbus function codes issued by the engine."""
    READ_HOLDING_REGISTERS = 0x03
    WRITE_SINGLE_REGISTER = 0x06


class ModbusExceptionCode(IntEnum):
    """Exception codes carried by a Modbus exception response."""
    ILLEGAL_FUNCTION = 0x01
    ILLEGAL_DATA_ADDRESS = 0x02
    ILLEGAL_DATA_VALUE = 0x03
    SLAVE_DEVICE_FAILURE = 0x04
    ACKNOWLEDGE = 0x05
    SLAVE_DEVICE_BUSY = 0x06
    MEMORY_PARITY_ERROR = 0x08
    GATEWAY_PATH_UNAVAILABLE = 0x0A
    GATEWAY_TARGET_FAILED_TO_RESPOND = 0x0B


class DeviceExceptionKind(str, Enum):
    """Reduced taxonomy callers branch on."""
    ILLEGAL_FUNCTION = "IllegalFunction"
    ILLEGAL_ADDRESS = "IllegalAddress"
    ILLEGAL_VALUE = "IllegalValue"
    DEVICE_FAILURE = "DeviceFailure"
    BUSY = "Busy"
    OTHER = "Other"


_EXCEPTION_DESCRIPTIONS: Dict[ModbusExceptionCode, str] = {
    ModbusExceptionCode.ILLEGAL_FUNCTION: "Illegal function",
    ModbusExceptionCode.ILLEGAL_DATA_ADDRESS: "Illegal data address",
    ModbusExceptionCode.ILLEGAL_DATA_VALUE: "Illegal data value",
    ModbusExceptionCode.SLAVE_DEVICE_FAILURE: "Slave device failure",
    ModbusExceptionCode.ACKNOWLEDGE: "Acknowledge",
    ModbusExceptionCode.SLAVE_DEVICE_BUSY: "Slave device busy",
    ModbusExceptionCode.MEMORY_PARITY_ERROR: "Memory parity error",
    ModbusExceptionCode.GATEWAY_PATH_UNAVAILABLE: "Gateway path unavailable",
    ModbusExceptionCode.GATEWAY_TARGET_FAILED_TO_RESPOND: "Gateway target device failed to respond",
}

_EXCEPTION_KINDS: Dict[ModbusExceptionCode, DeviceExceptionKind] = {
    ModbusExceptionCode.ILLEGAL_FUNCTION: DeviceExceptionKind.ILLEGAL_FUNCTION,
    ModbusExceptionCode.ILLEGAL_DATA_ADDRESS: DeviceExceptionKind.ILLEGAL_ADDRESS,
    ModbusExceptionCode.ILLEGAL_DATA_VALUE: DeviceExceptionKind.ILLEGAL_VALUE,
    ModbusExceptionCode.SLAVE_DEVICE_FAILURE: DeviceExceptionKind.DEVICE_FAILURE,
    ModbusExceptionCode.SLAVE_DEVICE_BUSY: DeviceExceptionKind.BUSY,
}


def _as_exception_code(code: int) -> Union[ModbusExceptionCode, int]:
    try:
        return ModbusExceptionCode(code)
    except ValueError:
        return code


def describe_exception_code(code: int) -> str:
    """Human readable text for a raw exception code byte."""
    known = _as_exception_code(code)
    if isinstance(known, ModbusExceptionCode):
        return _EXCEPTION_DESCRIPTIONS[known]
    return f"Unknown Modbus exception code 0x{code:02X}"


def exception_kind(code: int) -> DeviceExceptionKind:
    """Map a raw exception code byte onto :class:`DeviceExceptionKind`."""
    known = _as_exception_code(code)
    if isinstance(known, ModbusExceptionCode):
        return _EXCEPTION_KINDS.get(known, DeviceExceptionKind.OTHER)
    return DeviceExceptionKind.OTHER
