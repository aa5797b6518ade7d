"""
Core Communication Components

Provides base types, exceptions and the transport interface.
"""
from sowing_plc.com.core.exceptions import (
    CommunicationError,
    ProtocolError,
    InvalidArgumentError,
    FrameError,
    FrameTooShortError,
    BadProtocolIdError,
    LengthMismatchError,
    MalformedResponseError,
    UnexpectedFunctionCodeError,
    DuplicateTransactionError,
    TransportError,
    ConnectFailedError,
    NotConnectedError,
    ConnectionClosedError,
    RequestTimeoutError,
    RequestCancelledError,
    IndustrialBusError,
    ModbusError,
    DeviceExceptionError,
)
from sowing_plc.com.core.types import (
    ConnectionState,
    FunctionCode,
    ModbusExceptionCode,
    DeviceExceptionKind,
    describe_exception_code,
    exception_kind,
)
from sowing_plc.com.core.interfaces import (
    AbstractFrameTransport,
    FrameCallback,
    ConnectionStateCallback,
)

__all__ = [
    # Exceptions
    "CommunicationError",
    "ProtocolError",
    "InvalidArgumentError",
    "FrameError",
    "FrameTooShortError",
    "BadProtocolIdError",
    "LengthMismatchError",
    "MalformedResponseError",
    "UnexpectedFunctionCodeError",
    "DuplicateTransactionError",
    "TransportError",
    "ConnectFailedError",
    "NotConnectedError",
    "ConnectionClosedError",
    "RequestTimeoutError",
    "RequestCancelledError",
    "IndustrialBusError",
    "ModbusError",
    "DeviceExceptionError",
    # Types
    "ConnectionState",
    "FunctionCode",
    "ModbusExceptionCode",
    "DeviceExceptionKind",
    "describe_exception_code",
    "exception_kind",
    # Interfaces
    "AbstractFrameTransport",
    "FrameCallback",
    "ConnectionStateCallback",
]
