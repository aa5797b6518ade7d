"""
Modbus-TCP Frame Codec

Stateless translation between logical requests/results and wire bytes.

ADU layout (all integers big-endian)::

    bytes 0-1: transaction id
    bytes 2-3: protocol id (always 0)
    bytes 4-5: length (unit id + function code + payload)
    byte  6  : unit id
    byte  7  : function code
    bytes 8..: payload

Decode failures are raised, not returned.

Example:
    >>> frame = encode_request(1, 1, FunctionCode.READ_HOLDING_REGISTERS,
    ...                        build_read_holding_registers_payload(0x10, 4))
    >>> decode_frame(frame).transaction_id
    1
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import List

from sowing_plc.com.core.exceptions import (
    BadProtocolIdError,
    DeviceExceptionError,
    FrameTooShortError,
    InvalidArgumentError,
    LengthMismatchError,
    MalformedResponseError,
    UnexpectedFunctionCodeError,
)
from sowing_plc.com.core.types import FunctionCode

logger = logging.getLogger(__name__)

MBAP_HEADER = struct.Struct(">HHHB")
MBAP_HEADER_SIZE = MBAP_HEADER.size  # 7
MIN_FRAME_SIZE = MBAP_HEADER_SIZE + 1
# Bytes preceding the counted part of the frame (tid + pid + length).
LENGTH_FIELD_OFFSET = 6
MODBUS_PROTOCOL_ID = 0
EXCEPTION_FLAG = 0x80

MAX_READ_REGISTERS = 125
MAX_REGISTER_VALUE = 0xFFFF
MAX_ADDRESS = 0xFFFF
MAX_UNIT_ID = 0xFF
# unit id + function code + 252 payload bytes
MAX_PDU_LENGTH = 253


@dataclass(frozen=True)
class DecodedFrame:
    """Header fields and PDU of a received ADU."""
    transaction_id: int
    unit_id: int
    pdu: bytes

    @property
    def function_code(self) -> int:
        return self.pdu[0]


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------

def validate_quantity(quantity: int, start_address: int = 0) -> None:
    """
    Check a register read quantity.

    :raises InvalidArgumentError: Outside 1..125 or running past address 0xFFFF.
    """
    if not 1 <= quantity <= MAX_READ_REGISTERS:
        raise InvalidArgumentError(
            "quantity", quantity, f"must be between 1 and {MAX_READ_REGISTERS}"
        )
    if start_address + quantity - 1 > MAX_ADDRESS:
        raise InvalidArgumentError(
            "quantity", quantity,
            f"range starting at 0x{start_address:04X} exceeds address 0x{MAX_ADDRESS:04X}"
        )


def validate_address(address: int, name: str = "address") -> None:
    if not 0 <= address <= MAX_ADDRESS:
        raise InvalidArgumentError(name, address, f"must be between 0 and {MAX_ADDRESS}")


def validate_register_value(value: int) -> None:
    if not 0 <= value <= MAX_REGISTER_VALUE:
        raise InvalidArgumentError(
            "value", value, f"must be between 0 and {MAX_REGISTER_VALUE}"
        )


# ------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------

def build_read_holding_registers_payload(start_address: int, quantity: int) -> bytes:
    """Payload of FC 0x03: ``start address (u16) ++ quantity (u16)``."""
    validate_address(start_address, "start_address")
    validate_quantity(quantity, start_address)
    return struct.pack(">HH", start_address, quantity)


def build_write_single_register_payload(address: int, value: int) -> bytes:
    """Payload of FC 0x06: ``address (u16) ++ value (u16)``."""
    validate_address(address)
    validate_register_value(value)
    return struct.pack(">HH", address, value)


def encode_request(
    transaction_id: int,
    unit_id: int,
    function_code: int,
    payload: bytes,
) -> bytes:
    """
    Build a complete ADU.

    :param transaction_id: Correlation token, 0..0xFFFF.
    :param unit_id: Addressed unit, 0..0xFF.
    :param function_code: Modbus function code, 1..0x7F.
    :param payload: Function specific request data, may be empty.
    :return: Wire bytes ready to send.
    :raises InvalidArgumentError: When a header field is out of range.
    """
    if not 0 <= transaction_id <= 0xFFFF:
        raise InvalidArgumentError("transaction_id", transaction_id, "must fit in 16 bits")
    if not 0 <= unit_id <= MAX_UNIT_ID:
        raise InvalidArgumentError("unit_id", unit_id, "must fit in 8 bits")
    if not 1 <= function_code < EXCEPTION_FLAG:
        raise InvalidArgumentError("function_code", function_code, "must be between 1 and 0x7F")
    if len(payload) > MAX_PDU_LENGTH - 1:
        raise InvalidArgumentError("payload", len(payload), "payload too long")

    length = 1 + 1 + len(payload)
    header = MBAP_HEADER.pack(transaction_id, MODBUS_PROTOCOL_ID, length, unit_id)
    return header + bytes([function_code]) + bytes(payload)


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------

def decode_frame(data: bytes) -> DecodedFrame:
    """
    Split a received ADU into transaction id, unit id and PDU.

    :raises FrameTooShortError: Fewer than 8 bytes.
    :raises BadProtocolIdError: Protocol id is not 0.
    :raises LengthMismatchError: Length field does not match ``len(data) - 6``.
    """
    if len(data) < MIN_FRAME_SIZE:
        raise FrameTooShortError(len(data), MIN_FRAME_SIZE)

    transaction_id, protocol_id, length, unit_id = MBAP_HEADER.unpack_from(data)
    if protocol_id != MODBUS_PROTOCOL_ID:
        raise BadProtocolIdError(protocol_id)
    if length != len(data) - LENGTH_FIELD_OFFSET:
        raise LengthMismatchError(length, len(data) - LENGTH_FIELD_OFFSET)

    return DecodedFrame(
        transaction_id=transaction_id,
        unit_id=unit_id,
        pdu=bytes(data[MBAP_HEADER_SIZE:]),
    )


def _check_function_code(pdu: bytes, expected_function_code: int) -> None:
    if len(pdu) < 1:
        raise MalformedResponseError("empty PDU", pdu)

    function_code = pdu[0]
    if function_code == expected_function_code | EXCEPTION_FLAG:
        if len(pdu) < 2:
            raise MalformedResponseError("exception response without exception code", pdu)
        raise DeviceExceptionError(expected_function_code, pdu[1])
    if function_code != expected_function_code:
        raise UnexpectedFunctionCodeError(expected_function_code, function_code)


def decode_read_registers_response(
    pdu: bytes,
    expected_function_code: int,
    expected_count: int,
) -> List[int]:
    """
    Decode ``function code ++ byte count ++ values`` into register values.

    :raises DeviceExceptionError: The device answered with an exception PDU.
    :raises UnexpectedFunctionCodeError: Function code differs from the request.
    :raises MalformedResponseError: Byte count or PDU length is inconsistent.
    """
    _check_function_code(pdu, expected_function_code)

    if len(pdu) < 2:
        raise MalformedResponseError("missing byte count", pdu)
    byte_count = pdu[1]
    if byte_count != expected_count * 2 or len(pdu) != 2 + byte_count:
        raise MalformedResponseError(
            f"byte count {byte_count} / PDU length {len(pdu)} "
            f"do not match {expected_count} registers",
            pdu,
        )

    return list(struct.unpack_from(f">{expected_count}H", pdu, 2))


def decode_write_register_response(pdu: bytes, address: int, value: int) -> bool:
    """
    Validate the echo of a write single register request.

    An echo that differs from the request is logged, not raised.

    :return: ``True`` when address and value were echoed unchanged.
    :raises DeviceExceptionError: The device answered with an exception PDU.
    :raises UnexpectedFunctionCodeError: Function code differs from the request.
    :raises MalformedResponseError: PDU is not exactly 5 bytes.
    """
    _check_function_code(pdu, FunctionCode.WRITE_SINGLE_REGISTER)

    if len(pdu) != 5:
        raise MalformedResponseError(f"write echo must be 5 bytes, got {len(pdu)}", pdu)

    echoed_address, echoed_value = struct.unpack_from(">HH", pdu, 1)
    if echoed_address != address or echoed_value != value:
        logger.warning(
            "⚠️ Write single register echo mismatch. Address: 0x%04X->0x%04X, value: 0x%04X->0x%04X",
            address, echoed_address, value, echoed_value,
        )
        return False
    return True
