"""
Transport Interface

The engine never owns a socket. It talks to an injected frame transport that
can connect, send whole ADUs and report inbound frames and connection state
changes through two callbacks.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

FrameCallback = Callable[[bytes], None]
ConnectionStateCallback = Callable[[bool], None]


class AbstractFrameTransport(ABC):
    """
    Byte-stream transport delivering complete Modbus-TCP frames.

    Implementations must invoke the subscribed callbacks on the event loop
    thread the engine runs on.
    """

    def __init__(self) -> None:
        self._on_frame_received: Optional[FrameCallback] = None
        self._on_connection_state_changed: Optional[ConnectionStateCallback] = None

    def subscribe(
        self,
        on_frame_received: FrameCallback,
        on_connection_state_changed: ConnectionStateCallback,
    ) -> None:
        """Register the inbound frame and connection state callbacks."""
        self._on_frame_received = on_frame_received
        self._on_connection_state_changed = on_connection_state_changed

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """``True`` while the underlying stream is open."""

    @property
    @abstractmethod
    def remote_address(self) -> str:
        """Human-readable ``host:port`` string."""

    @abstractmethod
    async def connect(self, timeout: float) -> None:
        """
        Open the stream.

        :raises ConnectFailedError: When the connection cannot be established.
        """

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Write one complete frame."""

    @abstractmethod
    async def close(self) -> None:
        """Close the stream. Must be idempotent."""

    def _emit_frame(self, frame: bytes) -> None:
        if self._on_frame_received is not None:
            self._on_frame_received(frame)

    def _emit_connection_state(self, connected: bool) -> None:
        if self._on_connection_state_changed is not None:
            self._on_connection_state_changed(connected)
