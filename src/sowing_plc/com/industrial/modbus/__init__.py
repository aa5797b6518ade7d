"""
Modbus Industrial Protocol Module

Architecture:
    - codec.py: MBAP framing and PDU encode/decode (stateless)
    - registry.py: Transaction id assignment and pending request tracking
    - connection.py: Connection lifecycle, single connect attempt at a time
    - settings.py: PLC settings snapshot and providers
    - tcp/: Request executor (ModbusTCPClient)

Supported Features:
    - Read Holding Registers (0x03)
    - Write Single Register (0x06)

Usage:
    >>> from sowing_plc.com.industrial.modbus.tcp import ModbusTCPClient
    >>>
    >>> async with ModbusTCPClient(PlcSettings(host="192.168.1.10")) as client:
    ...     values = await client.read_holding_registers(start_address=0, quantity=10)
    ...     await client.write_single_register(address=100, value=42)
"""
from sowing_plc.com.industrial.modbus.registry import TransactionRegistry
from sowing_plc.com.industrial.modbus.connection import ConnectionLifecycleManager
from sowing_plc.com.industrial.modbus.settings import PlcSettings

__all__ = [
    "TransactionRegistry",
    "ConnectionLifecycleManager",
    "PlcSettings",
]
