"""
Helper Utilities for sowing_plc

Logging setup, error tracing and ``.env`` handling.
"""
from sowing_plc.helper.logging_config import PlcLoggingConfig, get_logger

__all__ = [
    "PlcLoggingConfig",
    "get_logger",
]
