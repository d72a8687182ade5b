"""Service layer that polls the emulator and feeds the signal engine."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from factfinder.core.engine import SignalEngine
from factfinder.core.errors import CallbackError, DecodeError, GameNotLoadedError, TransportError
from factfinder.core.model import ConnectionStatus, ReadPlan, Settings
from factfinder.core.providers import Provider, load_provider
from factfinder.core.script import ScriptCallbacks, ScriptHost
from factfinder.core.status import EMULATOR_SOURCE, StatusChannel
from factfinder.transports.base import MemoryReader
from factfinder.transports.control import ControlClient

LOGGER = logging.getLogger(__name__)


def _unavailable_action(name: str) -> Callable[[], bool]:
    def _action() -> bool:
        LOGGER.warning("No timer connection configured, dropping '%s'", name)
        return False

    return _action


class FactFinderService:
    def __init__(
        self,
        reader: MemoryReader,
        *,
        control: ControlClient | None = None,
        status_channel: StatusChannel | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.status_channel = status_channel or StatusChannel(self.settings.status_queue_size)
        self.reader = reader
        self.control = control
        self.engine = SignalEngine()
        self.plan: ReadPlan | None = None
        self.script: ScriptHost | None = None
        self._sleep = sleep
        self._last_report: tuple[ConnectionStatus, str] | None = None

    def actions(self) -> dict[str, Callable[[], bool]]:
        if self.control is not None:
            return self.control.actions()
        return {name: _unavailable_action(name) for name in ("split", "reset", "pause")}

    def select_provider(self, path: Path) -> Provider:
        provider = load_provider(path)
        script = ScriptHost.load(provider.script_path, self.actions())
        self.set_read_plan(provider.plan, script)
        LOGGER.info("Selected provider '%s' from %s", provider.name, provider.path)
        return provider

    def set_read_plan(self, plan: ReadPlan, script: ScriptHost | None = None) -> None:
        self.plan = plan
        self.script = script
        self.engine.reset(script.callbacks if script is not None else ScriptCallbacks())

    def state_items(self) -> list[tuple[str, str]]:
        if self.script is None:
            return []
        return self.script.state_items()

    def _report(self, status: ConnectionStatus, message: str) -> None:
        if self._last_report == (status, message):
            return
        self._last_report = (status, message)
        self.status_channel.publish(EMULATOR_SOURCE, status, message)

    def connect_emulator(self, max_attempts: int | None = None) -> ConnectionStatus:
        self._report(ConnectionStatus.DISCONNECTED, "Looking for Emulator")
        attempts = 0
        while True:
            attempts += 1
            status = self.reader.connect()
            if status is ConnectionStatus.CONNECTED:
                return status
            if max_attempts is not None and attempts >= max_attempts:
                return status
            LOGGER.info("Retrying emulator connection")
            self._sleep(self.settings.retry_interval_s)

    def tick(self) -> list[CallbackError]:
        """Run one poll: reconnect if needed, read a batch, dispatch signals."""
        if self.plan is None:
            self._report(ConnectionStatus.WAITING_FOR_GAME, "Select a Fact Provider")
            return []

        if self.reader.status() is not ConnectionStatus.CONNECTED:
            self._report(ConnectionStatus.RECONNECTING, "Reconnecting to emulator...")
            LOGGER.info("Emulator is not connected, attempting reconnect")
            if self.reader.connect() is not ConnectionStatus.CONNECTED:
                LOGGER.warning("Failed to reconnect to emulator")
                self._sleep(self.settings.retry_interval_s)
                return []
            LOGGER.info("Reconnected to emulator")

        try:
            values = self.reader.read_batch(self.plan)
        except GameNotLoadedError:
            self._report(ConnectionStatus.WAITING_FOR_GAME, "Game not loaded")
            return []
        except DecodeError as exc:
            LOGGER.warning("Skipping tick: %s", exc)
            return []
        except TransportError as exc:
            LOGGER.warning("Batch read failed: %s", exc)
            return []

        self._report(ConnectionStatus.CONNECTED, "Emulator connected")
        return self.engine.process(self.plan, values)

    def run(self, stop: threading.Event) -> None:
        """Poll once per read interval until ``stop`` is set."""
        while not stop.is_set():
            if self.connect_emulator(max_attempts=1) is ConnectionStatus.CONNECTED:
                break
            stop.wait(self.settings.retry_interval_s)
        LOGGER.info("Emulator initial connect")

        next_tick = time.monotonic()
        while not stop.is_set():
            if self.plan is None:
                self.tick()
                stop.wait(0.25)
                next_tick = time.monotonic()
                continue

            self.tick()
            next_tick += self.plan.read_interval / 1000.0
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Missed ticks are dropped rather than replayed.
                next_tick = time.monotonic()
                delay = 0.0
            stop.wait(delay)

    def close(self) -> None:
        self.reader.close()
        if self.control is not None:
            self.control.close()
