"""QUsb2Snes/USB2SNES command client over a framed message transport.

The websocket (or other framing) is supplied by the caller as a
:class:`~factfinder.transports.base.MessageTransport`. Commands go out as JSON
text frames; memory replies come back as raw binary frames that may split a
single request's bytes across several messages.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum

from factfinder.core.decoder import decode_value
from factfinder.core.errors import (
    DecodeError,
    ProtocolDesyncError,
    TransportConnectError,
    TransportError,
)
from factfinder.core.model import ConnectionStatus, ReadPlan, Value
from factfinder.transports.base import MessageTransport

WRAM_BASE = 0xF50000
CLIENT_NAME = "FactFinder"
LOGGER = logging.getLogger(__name__)


class Opcode(str, Enum):
    APP_VERSION = "AppVersion"
    NAME = "Name"
    DEVICE_LIST = "DeviceList"
    ATTACH = "Attach"
    INFO = "Info"
    BOOT = "Boot"
    RESET = "Reset"
    MENU = "Menu"
    LIST = "List"
    PUT_FILE = "PutFile"
    GET_FILE = "GetFile"
    RENAME = "Rename"
    REMOVE = "Remove"
    GET_ADDRESS = "GetAddress"


class Space(str, Enum):
    CMD = "CMD"
    SNES = "SNES"


@dataclass(frozen=True)
class DeviceInfo:
    version: str
    dev_type: str
    game: str
    flags: tuple[str, ...]


def build_query(opcode: Opcode, space: Space, *operands: str) -> bytes:
    query = {
        "Opcode": opcode.value,
        "Space": space.value,
        "Flags": [],
        "Operands": list(operands),
    }
    return json.dumps(query).encode("utf-8")


class QUsb2SnesClient:
    def __init__(
        self,
        transport: MessageTransport,
        *,
        client_name: str = CLIENT_NAME,
        retry_interval_s: float = 2.0,
        max_attempts: int | None = None,
    ) -> None:
        self.transport = transport
        self.client_name = client_name
        self.retry_interval_s = retry_interval_s
        self.max_attempts = max_attempts
        self.device: str | None = None
        self._status = ConnectionStatus.DISCONNECTED

    def connect(self) -> ConnectionStatus:
        self.device = None
        self.transport.connect()
        attempts = 0
        while not self.transport.connected():
            attempts += 1
            if self.max_attempts is not None and attempts >= self.max_attempts:
                LOGGER.warning("Message transport did not come up after %d check(s)", attempts)
                self._status = ConnectionStatus.DISCONNECTED
                return self._status
            time.sleep(self.retry_interval_s)

        try:
            self.set_name(self.client_name)
            devices = self.list_devices()
            if not devices:
                raise TransportConnectError("QUsb2Snes reported no devices")
            self.attach(devices[0])
        except TransportError as exc:
            LOGGER.warning("QUsb2Snes handshake failed: %s", exc)
            self._status = ConnectionStatus.DISCONNECTED
            return self._status

        self.device = devices[0]
        self._status = ConnectionStatus.CONNECTED
        LOGGER.info("Attached to QUsb2Snes device '%s'", self.device)
        return self._status

    def status(self) -> ConnectionStatus:
        if self._status is ConnectionStatus.CONNECTED and not self.transport.connected():
            self._status = ConnectionStatus.RECONNECTING
        return self._status

    def game_loaded(self) -> bool:
        if self.device is None:
            return False
        try:
            return bool(self.info().game)
        except TransportError as exc:
            LOGGER.debug("Info query failed: %s", exc)
            return False

    def close(self) -> None:
        self.device = None
        self._status = ConnectionStatus.DISCONNECTED

    def set_name(self, name: str) -> None:
        self._send(Opcode.NAME, Space.CMD, name)

    def app_version(self) -> str:
        self._send(Opcode.APP_VERSION, Space.CMD)
        results = self._reply()
        if not results:
            raise TransportError("AppVersion reply had no results")
        return results[0]

    def list_devices(self) -> list[str]:
        self._send(Opcode.DEVICE_LIST, Space.CMD)
        return self._reply()

    def attach(self, device: str) -> None:
        self._send(Opcode.ATTACH, Space.CMD, device)

    def info(self) -> DeviceInfo:
        self._send(Opcode.INFO, Space.CMD)
        results = self._reply()
        if len(results) < 3:
            raise TransportError(f"Info reply has {len(results)} results, expected at least 3")
        return DeviceInfo(
            version=results[0],
            dev_type=results[1],
            game=results[2],
            flags=tuple(results[3:]),
        )

    def reset(self) -> None:
        self._send(Opcode.RESET, Space.CMD)

    def read_batch(self, plan: ReadPlan) -> list[Value]:
        if self.device is None:
            raise TransportConnectError("QUsb2Snes client is not attached to a device")

        operands: list[str] = []
        total = 0
        for spec in plan.watches:
            # SRAM watches are read at WRAM offsets on this backend.
            operands.append(f"{spec.address + WRAM_BASE:X}")
            operands.append(f"{spec.width:x}")
            total += spec.width

        self._send(Opcode.GET_ADDRESS, Space.SNES, *operands)

        data = bytearray()
        while len(data) < total:
            data.extend(self._read())

        if len(data) != total:
            self._status = ConnectionStatus.RECONNECTING
            raise ProtocolDesyncError(f"protocol desync: expected {total} bytes, got {len(data)}")

        values: list[Value] = []
        offset = 0
        for spec in plan.watches:
            chunk = data[offset : offset + spec.width]
            offset += spec.width
            try:
                values.append(decode_value(spec.type, chunk, name=spec.name, mask=spec.mask))
            except DecodeError as exc:
                raise DecodeError(
                    f"decode failed for {spec.name} at addr={spec.address:#x} type={spec.type.value}: {exc}"
                ) from exc

        LOGGER.debug("Read %d values: %s", len(values), values)
        return values

    def _send(self, opcode: Opcode, space: Space, *operands: str) -> None:
        try:
            self.transport.write_message(build_query(opcode, space, *operands))
        except TransportError:
            self._status = ConnectionStatus.RECONNECTING
            raise
        except OSError as exc:
            self._status = ConnectionStatus.RECONNECTING
            raise TransportError(f"{opcode.value} send failed: {exc}") from exc

    def _read(self) -> bytes:
        try:
            return self.transport.read_message()
        except TransportError:
            self._status = ConnectionStatus.RECONNECTING
            raise
        except OSError as exc:
            self._status = ConnectionStatus.RECONNECTING
            raise TransportError(f"message read failed: {exc}") from exc

    def _reply(self) -> list[str]:
        message = self._read()
        try:
            result = json.loads(message)
        except ValueError as exc:
            self._status = ConnectionStatus.RECONNECTING
            raise TransportError(f"invalid JSON reply: {exc}") from exc
        if not isinstance(result, dict):
            self._status = ConnectionStatus.RECONNECTING
            raise TransportError("JSON reply must be an object")
        return [str(item) for item in result.get("Results") or []]
