"""Lossy status reporting toward a UI or CLI consumer."""

from __future__ import annotations

import logging
import queue

from factfinder.core.model import ConnectionStatus, StatusEvent

EMULATOR_SOURCE = "emulator"
CONTROL_SOURCE = "control"
LOGGER = logging.getLogger(__name__)


class StatusChannel:
    """Bounded queue of status events that never blocks the producer.

    When the consumer falls behind, new events are dropped.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: queue.Queue[StatusEvent] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, source: str, status: ConnectionStatus, message: str) -> bool:
        event = StatusEvent(source=source, status=status, message=message)
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            LOGGER.debug("Status channel full, dropped %s", event)
            return False
        return True

    def get(self, timeout: float | None = None) -> StatusEvent | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[StatusEvent]:
        events: list[StatusEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events
