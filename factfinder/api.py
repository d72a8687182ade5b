"""Stable public API for building tooling on top of factfinder.

This module is the supported integration surface for third-party callers
(alternate frontends, test rigs, automation scripts). Avoid importing from
internal modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

import threading
from pathlib import Path

from factfinder.core.engine import SignalEngine
from factfinder.core.errors import (
    CallbackError,
    DecodeError,
    FactFinderError,
    GameNotLoadedError,
    ProtocolDesyncError,
    ProviderLoadError,
    ReadPlanValidationError,
    ScriptLoadError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from factfinder.core.model import (
    Bank,
    ConnectionStatus,
    ReadPlan,
    ReadSpec,
    Settings,
    Signal,
    StatusEvent,
    Value,
    ValueType,
)
from factfinder.core.providers import Provider, scan_providers
from factfinder.core.readplan import parse
from factfinder.core.script import ScriptCallbacks
from factfinder.core.service import FactFinderService
from factfinder.core.status import StatusChannel
from factfinder.transports.base import MemoryReader, MessageTransport
from factfinder.transports.control import ControlClient, ControlCommand
from factfinder.transports.qusb2snes import QUsb2SnesClient
from factfinder.transports.retroarch import RetroArchClient

__all__ = [
    "FactFinderError",
    "ReadPlanValidationError",
    "ProviderLoadError",
    "ScriptLoadError",
    "CallbackError",
    "GameNotLoadedError",
    "DecodeError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "ProtocolDesyncError",
    "Bank",
    "ConnectionStatus",
    "ReadPlan",
    "ReadSpec",
    "Settings",
    "Signal",
    "StatusEvent",
    "Value",
    "ValueType",
    "Provider",
    "parse",
    "ScriptCallbacks",
    "SignalEngine",
    "StatusChannel",
    "MemoryReader",
    "MessageTransport",
    "ControlClient",
    "ControlCommand",
    "QUsb2SnesClient",
    "RetroArchClient",
    "Client",
]


class Client:
    """Public client wiring a memory reader, the signal engine and the timer link.

    By default it polls RetroArch on ``settings.emulator_host``/``port`` and
    drives the timer on ``settings.control_host``/``port``. Pass ``reader``
    to use another backend, e.g. a :class:`QUsb2SnesClient`.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        reader: MemoryReader | None = None,
        control: ControlClient | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.status_channel = StatusChannel(self.settings.status_queue_size)
        if reader is None:
            reader = RetroArchClient(
                self.settings.emulator_host,
                self.settings.emulator_port,
                retry_interval_s=self.settings.retry_interval_s,
            )
        if control is None:
            control = ControlClient(
                self.settings.control_host,
                self.settings.control_port,
                status_channel=self.status_channel,
            )
        self._service = FactFinderService(
            reader,
            control=control,
            status_channel=self.status_channel,
            settings=self.settings,
        )

    @property
    def engine(self) -> SignalEngine:
        return self._service.engine

    def list_providers(self, root: Path | None = None) -> list[Provider]:
        return scan_providers(root)

    def select_provider(self, path: Path) -> Provider:
        return self._service.select_provider(path)

    def tick(self) -> list[CallbackError]:
        return self._service.tick()

    def run(self, stop: threading.Event) -> None:
        if self._service.control is not None:
            self._service.control.start_heartbeat(self.settings.heartbeat_interval_s)
        self._service.run(stop)

    def state_items(self) -> list[tuple[str, str]]:
        return self._service.state_items()

    def status_events(self) -> list[StatusEvent]:
        return self.status_channel.drain()

    def next_status(self, timeout: float | None = None) -> StatusEvent | None:
        return self.status_channel.get(timeout=timeout)

    def close(self) -> None:
        self._service.close()
