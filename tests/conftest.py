"""
Global test configuration and fixtures for the sowing_plc test suite.
"""
import pytest

from fakes import FakeTransportFactory
from sowing_plc.com.industrial.modbus.settings import PlcSettings
from sowing_plc.helper.logging_config import PlcLoggingConfig


@pytest.fixture
def plc_settings() -> PlcSettings:
    return PlcSettings(
        host="127.0.0.1", port=5020, unit_id=1, connect_timeout=1.0, request_timeout=1.0
    )


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture(autouse=True)
def reset_logging_config():
    """Reset the logging configuration between tests"""
    yield
    PlcLoggingConfig.reset()
