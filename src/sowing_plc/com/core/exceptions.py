"""
Communication Layer Exceptions

Centralized exception hierarchy for the PLC protocol engine.
Splits errors into protocol (wire contract), transport (connection) and
industrial bus (device-reported) layers.
"""
from typing import Optional, Any, Dict

from sowing_plc.com.core.types import (
    describe_exception_code,
    exception_kind,
)


# ==============================================================================
# Base Communication Exceptions
# ==============================================================================

class CommunicationError(Exception):
    """
    Base exception for all communication errors.

    Attributes:
        message: Error description
        details: Optional additional error context
        original_exception: Original exception if wrapped
    """
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_exception = original_exception

    def __str__(self) -> str:
        result = self.message
        if self.details:
            result += f" | Details: {self.details}"
        if self.original_exception:
            result += f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"
        return result


# ==============================================================================
# Protocol Layer Exceptions
# ==============================================================================

class ProtocolError(CommunicationError):
    """Base exception for wire-contract violations and invalid requests."""
    pass


class InvalidArgumentError(ProtocolError):
    """Raised before any I/O when a caller passes an out-of-range argument."""
    def __init__(self, argument: str, value: Any, reason: str):
        super().__init__(
            f"Invalid argument '{argument}'={value!r}: {reason}",
            details={"argument": argument, "value": value}
        )
        self.argument = argument
        self.value = value


class FrameError(ProtocolError):
    """Base exception for MBAP header level decode failures."""
    pass


class FrameTooShortError(FrameError):
    """Raised when a received frame is shorter than header plus function code."""
    def __init__(self, size: int, minimum: int):
        super().__init__(
            f"Frame too short: {size} bytes (minimum {minimum})",
            details={"size": size, "minimum": minimum}
        )
        self.size = size


class BadProtocolIdError(FrameError):
    """Raised when the MBAP protocol identifier is not 0 (Modbus)."""
    def __init__(self, protocol_id: int):
        super().__init__(
            f"Invalid Modbus protocol id {protocol_id}",
            details={"protocol_id": protocol_id}
        )
        self.protocol_id = protocol_id


class LengthMismatchError(FrameError):
    """Raised when the MBAP length field disagrees with the bytes received."""
    def __init__(self, declared: int, actual: int):
        super().__init__(
            f"Frame length mismatch: header declares {declared}, got {actual}",
            details={"declared": declared, "actual": actual}
        )
        self.declared = declared
        self.actual = actual


class MalformedResponseError(ProtocolError):
    """Raised when a response PDU violates the function code's layout."""
    def __init__(self, reason: str, pdu: Optional[bytes] = None):
        super().__init__(
            f"Malformed response: {reason}",
            details={"pdu": pdu.hex(" ") if pdu is not None else None}
        )
        self.reason = reason


class UnexpectedFunctionCodeError(ProtocolError):
    """Raised when a response carries a different function code than requested."""
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Unexpected function code 0x{actual:02X} (expected 0x{expected:02X})",
            details={"expected": expected, "actual": actual}
        )
        self.expected = expected
        self.actual = actual


class DuplicateTransactionError(ProtocolError):
    """Raised when a transaction id is registered while still in flight."""
    def __init__(self, transaction_id: int):
        super().__init__(
            f"Transaction id {transaction_id} is already pending",
            details={"transaction_id": transaction_id}
        )
        self.transaction_id = transaction_id


# ==============================================================================
# Transport Layer Exceptions
# ==============================================================================

class TransportError(CommunicationError):
    """Base exception for transport layer errors."""
    pass


class ConnectFailedError(TransportError):
    """Raised by transports when a connection attempt fails."""
    def __init__(
        self,
        endpoint: str,
        reason: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            f"Connection to '{endpoint}' failed" + (f": {reason}" if reason else ""),
            details={"endpoint": endpoint, "reason": reason},
            original_exception=original_exception
        )
        self.endpoint = endpoint


class NotConnectedError(TransportError):
    """Raised when a request is issued without an active connection."""
    def __init__(self, endpoint: Optional[str] = None):
        super().__init__(
            "Not connected" + (f" to '{endpoint}'" if endpoint else ""),
            details={"endpoint": endpoint}
        )
        self.endpoint = endpoint


class ConnectionClosedError(TransportError):
    """Raised for every request still pending when the connection drops."""
    def __init__(self, endpoint: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(
            "Connection" + (f" to '{endpoint}'" if endpoint else "")
            + " closed" + (f": {reason}" if reason else ""),
            details={"endpoint": endpoint, "reason": reason}
        )
        self.endpoint = endpoint
        self.reason = reason


class RequestTimeoutError(TransportError):
    """
    Raised when no matching response arrived in time.

    The request may or may not have reached the device.
    """
    def __init__(self, transaction_id: int, timeout: float):
        super().__init__(
            f"Request TID={transaction_id} timed out after {timeout}s",
            details={"transaction_id": transaction_id, "timeout": timeout}
        )
        self.transaction_id = transaction_id
        self.timeout = timeout


class RequestCancelledError(CommunicationError):
    """Raised when a request is abandoned because of shutdown or caller cancellation."""
    def __init__(self, reason: str = "cancelled"):
        super().__init__(
            f"Request cancelled: {reason}",
            details={"reason": reason}
        )
        self.reason = reason


# ==============================================================================
# Industrial Bus Exceptions
# ==============================================================================

class IndustrialBusError(CommunicationError):
    """Base exception for industrial bus communication."""
    pass


class ModbusError(IndustrialBusError):
    """Base exception for Modbus-specific errors."""
    pass


class DeviceExceptionError(ModbusError):
    """Raised when the Modbus device answers with an exception response."""
    def __init__(self, function_code: int, exception_code: int):
        super().__init__(
            f"Modbus exception 0x{exception_code:02X} on function 0x{function_code:02X}: "
            f"{describe_exception_code(exception_code)}",
            details={"function_code": function_code, "exception_code": exception_code}
        )
        self.function_code = function_code
        self.exception_code = exception_code
        self.kind = exception_kind(exception_code)
