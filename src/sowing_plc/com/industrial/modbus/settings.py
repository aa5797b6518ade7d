"""
PLC Connection Settings

Immutable snapshot of everything one connection attempt needs. A fresh
snapshot is taken before every connect, so edits to the ``.env`` file or the
environment apply on the next reconnect.

Environment keys:
    PLC_HOST, PLC_PORT, PLC_UNIT_ID, PLC_CONNECT_TIMEOUT, PLC_REQUEST_TIMEOUT

Example:
    >>> settings = load_settings(Path("config/.env"))
    >>> settings.endpoint
    '192.168.1.10:502'
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

from sowing_plc.helper.env_handler import EnvHandler

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLC_"

DEFAULT_PORT = 502
DEFAULT_UNIT_ID = 1
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_REQUEST_TIMEOUT = 5.0


@dataclass(frozen=True)
class PlcSettings:
    """
    Connection parameters of the sowing-wall PLC.

    :param host: PLC IP address or host name. Empty means "not configured".
    :param port: Modbus-TCP port.
    :param unit_id: Modbus unit (slave) id.
    :param connect_timeout: Seconds allowed for one connection attempt.
    :param request_timeout: Default seconds to wait for a response.
    """
    host: str = ""
    port: int = DEFAULT_PORT
    unit_id: int = DEFAULT_UNIT_ID
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self):
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")
        if not 0 <= self.unit_id <= 0xFF:
            raise ValueError(f"unit_id must be between 0 and 255, got {self.unit_id}")
        if self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {self.connect_timeout}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")

    @property
    def is_configured(self) -> bool:
        """``False`` when host or port is missing."""
        return bool(self.host) and self.port != 0

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls, env: Mapping[str, str], prefix: str = ENV_PREFIX) -> "PlcSettings":
        """
        Build settings from a mapping of environment variables.

        Missing keys fall back to the defaults.

        :raises ValueError: A value cannot be parsed or is out of range.
        """
        def _get(key: str, default, cast):
            raw = env.get(f"{prefix}{key}")
            if raw is None or str(raw).strip() == "":
                return default
            try:
                return cast(str(raw).strip())
            except ValueError as exc:
                raise ValueError(f"Invalid value for {prefix}{key}: {raw!r}") from exc

        return cls(
            host=_get("HOST", "", str),
            port=_get("PORT", DEFAULT_PORT, int),
            unit_id=_get("UNIT_ID", DEFAULT_UNIT_ID, int),
            connect_timeout=_get("CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT, float),
            request_timeout=_get("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float),
        )


SettingsProvider = Callable[[], PlcSettings]


def load_settings(env_path: Optional[Union[Path, str]] = None) -> PlcSettings:
    """Read a ``.env`` file plus the process environment into :class:`PlcSettings`."""
    settings = PlcSettings.from_env(EnvHandler.read_env(env_path))
    logger.debug(
        "PLC settings loaded (host=%s, port=%s, unit_id=%s)",
        settings.host, settings.port, settings.unit_id,
    )
    return settings


def env_settings_provider(env_path: Optional[Union[Path, str]] = None) -> SettingsProvider:
    """Provider that re-reads *env_path* on every call."""
    def _provider() -> PlcSettings:
        return load_settings(env_path)
    return _provider


def static_settings_provider(settings: PlcSettings) -> SettingsProvider:
    """Provider that always returns the same snapshot."""
    return lambda: settings
