"""RetroArch network command client over UDP."""

from __future__ import annotations

import logging
import re
import socket
import threading
import time

from factfinder.core.decoder import decode_value
from factfinder.core.errors import (
    DecodeError,
    GameNotLoadedError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from factfinder.core.model import Bank, ConnectionStatus, ReadPlan, ReadSpec, Value
from factfinder.transports.base import SocketFactory

WRAM_OFFSET = 0x7E0000
LOROM_SRAM_BASE = 0x700000
HIROM_SRAM_BASE = 0x300000 + 0x6000
PROBE_COMMAND = b"VERSION"
READ_COMMAND = "READ_CORE_MEMORY"
_RESPONSE_BUFFER_SIZE = 4096
_HEX_BYTE_RE = re.compile(rb"^[0-9A-Fa-f]{2}")
LOGGER = logging.getLogger(__name__)


def translate_address(bank: Bank, address: int, hirom: bool) -> int:
    """Map a bank-relative address onto the core's flat memory map."""
    if bank is Bank.SRAM:
        if hirom:
            return HIROM_SRAM_BASE + (address % 0xA000) + (address // 0xA000) * 0x10000
        return LOROM_SRAM_BASE + (address % 0x8000) + (address // 0x8000) * 0x10000
    return WRAM_OFFSET + address


def build_read_command(address: int, size: int) -> bytes:
    return f"{READ_COMMAND} {address:X} {size}".encode("ascii")


def parse_read_reply(reply: bytes | memoryview, want: int) -> bytes:
    """Extract ``want`` bytes from a ``READ_CORE_MEMORY <addr> <b0> <b1> ...`` reply."""
    tokens = bytes(reply).split()
    # First two tokens echo the command name and address.
    payload = tokens[2:]
    if payload and payload[0].startswith(b"-"):
        raise GameNotLoadedError("game not loaded")
    if len(payload) < want:
        raise DecodeError(f"truncated reply: expected {want} hex bytes, got {len(payload)}")

    out = bytearray(want)
    for index, token in enumerate(payload[:want]):
        match = _HEX_BYTE_RE.match(token)
        if match is None:
            raise DecodeError(f"invalid hex token {token!r}")
        out[index] = int(match.group(0), 16)
    return bytes(out)


class RetroArchClient:
    def __init__(
        self,
        host: str = "localhost",
        port: int = 55355,
        *,
        retry_interval_s: float = 1.0,
        probe_timeout_s: float = 1.0,
        read_timeout_s: float = 0.5,
        max_attempts: int | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.retry_interval_s = retry_interval_s
        self.probe_timeout_s = probe_timeout_s
        self.read_timeout_s = read_timeout_s
        self.max_attempts = max_attempts
        self._socket_factory = socket_factory or socket.socket
        self._sock: socket.socket | None = None
        self._lock = threading.Lock()
        self._status = ConnectionStatus.DISCONNECTED
        self._game_loaded = False
        self._resp_buf = bytearray(_RESPONSE_BUFFER_SIZE)
        self._resp_view = memoryview(self._resp_buf)

    def connect(self) -> ConnectionStatus:
        self._close_socket()
        try:
            sock = self._socket_factory(socket.AF_INET, socket.SOCK_DGRAM)
            sock.connect((self.host, self.port))
        except OSError as exc:
            LOGGER.warning("Could not open UDP socket to %s:%s: %s", self.host, self.port, exc)
            self._status = ConnectionStatus.DISCONNECTED
            return self._status
        self._sock = sock

        attempts = 0
        while self.max_attempts is None or attempts < self.max_attempts:
            attempts += 1
            if self._probe(sock):
                self._status = ConnectionStatus.CONNECTED
                LOGGER.info("Connected to RetroArch at %s:%s", self.host, self.port)
                return self._status
            time.sleep(self.retry_interval_s)

        LOGGER.warning("RetroArch did not answer after %d probe(s)", attempts)
        self._close_socket()
        self._status = ConnectionStatus.DISCONNECTED
        return self._status

    def _probe(self, sock: socket.socket) -> bool:
        try:
            sock.settimeout(self.probe_timeout_s)
            sock.send(PROBE_COMMAND)
            received = sock.recv_into(self._resp_buf)
        except OSError as exc:
            LOGGER.debug("Liveness probe failed: %s", exc)
            return False
        return received > 0

    def status(self) -> ConnectionStatus:
        return self._status

    def game_loaded(self) -> bool:
        return self._game_loaded

    def close(self) -> None:
        self._close_socket()
        self._status = ConnectionStatus.DISCONNECTED
        self._game_loaded = False

    def _close_socket(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _signal_reconnect(self, message: str, exc: Exception) -> None:
        LOGGER.warning("%s, signaling reconnect: %s", message, exc)
        self._status = ConnectionStatus.RECONNECTING

    def _drain(self, sock: socket.socket) -> None:
        sock.settimeout(0.0)
        while True:
            try:
                sock.recv_into(self._resp_buf)
            except BlockingIOError:
                return
            except OSError as exc:
                self._signal_reconnect("Failed to drain stale replies", exc)
                raise TransportError(f"RetroArch drain failed: {exc}") from exc

    def _round_trip(self, sock: socket.socket, command: bytes) -> memoryview:
        with self._lock:
            try:
                sock.send(command)
            except OSError as exc:
                self._signal_reconnect("Failed to write message to connection", exc)
                raise TransportSendError(f"RetroArch send failed: {exc}") from exc

            sock.settimeout(self.read_timeout_s)
            try:
                received = sock.recv_into(self._resp_buf)
            except TimeoutError as exc:
                self._signal_reconnect("Timed out reading from connection", exc)
                raise TransportTimeoutError("RetroArch reply timed out") from exc
            except OSError as exc:
                self._signal_reconnect("Failed to read message from connection", exc)
                raise TransportError(f"RetroArch receive failed: {exc}") from exc
        return self._resp_view[:received]

    def _read_spec(self, sock: socket.socket, spec: ReadSpec, hirom: bool) -> Value:
        address = translate_address(spec.bank, spec.address, hirom)
        reply = self._round_trip(sock, build_read_command(address, spec.width))
        try:
            raw = parse_read_reply(reply, spec.width)
            return decode_value(spec.type, raw, name=spec.name, mask=spec.mask)
        except GameNotLoadedError:
            self._game_loaded = False
            raise
        except DecodeError as exc:
            raise DecodeError(
                f"decode failed for {spec.name} at {address:#x} ({spec.type.value}): {exc}"
            ) from exc

    def read_batch(self, plan: ReadPlan) -> list[Value]:
        sock = self._sock
        if sock is None or self._status is not ConnectionStatus.CONNECTED:
            raise TransportConnectError("RetroArch client is not connected")

        self._drain(sock)
        values = [self._read_spec(sock, spec, plan.hirom) for spec in plan.watches]
        self._game_loaded = True
        LOGGER.debug("Read %d values: %s", len(values), values)
        return values
