"""Transport interfaces."""

from __future__ import annotations

import socket
from collections.abc import Callable
from typing import Protocol

from factfinder.core.model import ConnectionStatus, ReadPlan, Value

SocketFactory = Callable[[int, int], socket.socket]


class MemoryReader(Protocol):
    def connect(self) -> ConnectionStatus:
        """Open the transport and block until the emulator answers a liveness probe."""

    def status(self) -> ConnectionStatus:
        """Last known connection state, without touching the wire."""

    def game_loaded(self) -> bool:
        """Best-effort check that the emulator has a game running."""

    def read_batch(self, plan: ReadPlan) -> list[Value]:
        """Read every watch in plan order, or raise without partial results."""

    def close(self) -> None:
        """Release the transport."""


class MessageTransport(Protocol):
    def connect(self) -> None:
        """Start connecting; completion is observed through ``connected()``."""

    def connected(self) -> bool:
        """Whether the transport is currently usable."""

    def write_message(self, data: bytes) -> None:
        """Send one framed message."""

    def read_message(self) -> bytes:
        """Block for the next framed message and return its payload."""
