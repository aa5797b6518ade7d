"""
Modbus TCP Module

Components:
    - ModbusTCPClient: Async Modbus TCP client

Usage:
    >>> from sowing_plc.com.industrial.modbus.tcp import ModbusTCPClient
    >>>
    >>> async with ModbusTCPClient(PlcSettings(host="192.168.1.10")) as client:
    ...     values = await client.read_holding_registers(0, 10)
    ...     await client.write_single_register(100, 42)
"""
from sowing_plc.com.industrial.modbus.tcp.client import ModbusTCPClient

__all__ = ["ModbusTCPClient"]
