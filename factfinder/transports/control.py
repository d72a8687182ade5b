"""Remote control packets for a split timer listening on UDP."""

from __future__ import annotations

import logging
import socket
import struct
import threading
import time
from collections.abc import Callable
from enum import IntEnum

from factfinder.core.model import ConnectionStatus
from factfinder.core.status import CONTROL_SOURCE, StatusChannel
from factfinder.transports.base import SocketFactory

MAGIC = b"OSRC"
PROTOCOL_VERSION = 1
PACKET = struct.Struct("<4sBBB")
PACKET_SIZE = PACKET.size
CONNECTED_MESSAGE = "OpenSplit Connected"
DISCONNECTED_MESSAGE = "OpenSplit Not Found"
LOGGER = logging.getLogger(__name__)


class ControlCommand(IntEnum):
    QUIT = 0
    NEW = 1
    LOAD = 2
    EDIT = 3
    CANCEL = 4
    SUBMIT = 5
    CLOSE = 6
    RESET = 7
    SAVE = 8
    SPLIT = 9
    UNDO = 10
    SKIP = 11
    PAUSE = 12
    TOGGLEGLOBAL = 13
    FOCUS = 14
    HELLO = 15


def build_packet(command: ControlCommand, request_ack: bool = False) -> bytes:
    return PACKET.pack(MAGIC, PROTOCOL_VERSION, 1 if request_ack else 0, int(command))


class ControlClient:
    """Sends control commands to the timer and tracks whether it answers.

    The socket and the peer flag are shared between the heartbeat thread and
    script actions, so every exchange happens under ``_lock``.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 6767,
        *,
        status_channel: StatusChannel | None = None,
        ack_timeout_s: float = 1.0,
        socket_factory: SocketFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.peer = (host, port)
        self.status_channel = status_channel
        self.ack_timeout_s = ack_timeout_s
        factory = socket_factory or socket.socket
        self._sock = factory(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind(("", 0))
        self._lock = threading.Lock()
        self._connected: bool | None = None
        self._stop = threading.Event()
        self._heartbeat: threading.Thread | None = None
        self._clock = clock

    @property
    def peer_connected(self) -> bool:
        return bool(self._connected)

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        LOGGER.info("Timer peer %s", "connected" if connected else "not found")
        if self.status_channel is not None:
            if connected:
                self.status_channel.publish(CONTROL_SOURCE, ConnectionStatus.CONNECTED, CONNECTED_MESSAGE)
            else:
                self.status_channel.publish(CONTROL_SOURCE, ConnectionStatus.DISCONNECTED, DISCONNECTED_MESSAGE)

    def hello(self) -> bool:
        """Probe the timer and update the peer flag from the echo."""
        with self._lock:
            try:
                self._sock.sendto(build_packet(ControlCommand.HELLO, request_ack=True), self.peer)
                self._sock.settimeout(self.ack_timeout_s)
                data, _ = self._sock.recvfrom(64)
            except OSError as exc:
                LOGGER.debug("Timer hello failed: %s", exc)
                self._set_connected(False)
                return False

            alive = len(data) == PACKET_SIZE and data[PACKET_SIZE - 1] == 0
            self._set_connected(alive)
            return alive

    def send(self, command: ControlCommand) -> bool:
        with self._lock:
            try:
                self._sock.sendto(build_packet(command), self.peer)
            except OSError as exc:
                LOGGER.warning("Failed to send %s to timer: %s", command.name, exc)
                self._set_connected(False)
                return False
        return True

    def split(self) -> bool:
        return self.send(ControlCommand.SPLIT)

    def reset(self) -> bool:
        return self.send(ControlCommand.RESET)

    def pause(self) -> bool:
        return self.send(ControlCommand.PAUSE)

    def actions(self) -> dict[str, Callable[[], bool]]:
        return {"split": self.split, "reset": self.reset, "pause": self.pause}

    def start_heartbeat(self, interval_s: float = 1.0) -> None:
        if self._heartbeat is not None and self._heartbeat.is_alive():
            return
        self._stop.clear()
        self._heartbeat = threading.Thread(
            target=self._heartbeat_loop,
            args=(interval_s,),
            name="factfinder-heartbeat",
            daemon=True,
        )
        self._heartbeat.start()

    def _heartbeat_loop(self, interval_s: float) -> None:
        # Beats are scheduled on a fixed deadline; overrun beats are dropped.
        next_beat = self._clock() + interval_s
        while not self._stop.wait(max(0.0, next_beat - self._clock())):
            self.hello()
            next_beat += interval_s
            now = self._clock()
            if next_beat < now:
                next_beat = now

    def close(self) -> None:
        self._stop.set()
        if self._heartbeat is not None:
            self._heartbeat.join(timeout=self.ack_timeout_s + 1.0)
            self._heartbeat = None
        with self._lock:
            self._set_connected(False)
            self._sock.close()
