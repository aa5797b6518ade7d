"""
TCP transport layer.

Provides the async TCP frame transport based on :mod:`asyncio`
(no extra dependencies required).
"""
from sowing_plc.com.external.tcp.tcp_client import AsyncTcpFrameTransport

__all__ = ["AsyncTcpFrameTransport"]
