from __future__ import annotations

import threading

import pytest

from factfinder.core.model import ConnectionStatus
from factfinder.core.status import CONTROL_SOURCE, StatusChannel
from factfinder.transports.control import (
    CONNECTED_MESSAGE,
    DISCONNECTED_MESSAGE,
    ControlClient,
    ControlCommand,
    build_packet,
)


class FakeControlSocket:
    def __init__(self, replies: list[bytes | Exception] | None = None) -> None:
        self.replies = list(replies or [])
        self.sent: list[tuple[bytes, tuple[str, int]]] = []
        self.bound: tuple[str, int] | None = None
        self.timeout: float | None = None
        self.send_error: Exception | None = None
        self.closed = False
        self.hello_seen = threading.Event()

    def bind(self, address: tuple[str, int]) -> None:
        self.bound = address

    def settimeout(self, timeout: float | None) -> None:
        self.timeout = timeout

    def sendto(self, data: bytes, address: tuple[str, int]) -> int:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((data, address))
        if data[-1] == ControlCommand.HELLO:
            self.hello_seen.set()
        return len(data)

    def recvfrom(self, size: int) -> tuple[bytes, tuple[str, int]]:
        if not self.replies:
            raise TimeoutError("timed out")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply, ("127.0.0.1", 6767)

    def close(self) -> None:
        self.closed = True


ECHO = b"OSRC\x01\x01\x00"


def _client(sock: FakeControlSocket, channel: StatusChannel | None = None) -> ControlClient:
    return ControlClient(
        "127.0.0.1",
        6767,
        status_channel=channel,
        ack_timeout_s=0.05,
        socket_factory=lambda family, kind: sock,
    )


def test_packet_layout() -> None:
    assert build_packet(ControlCommand.SPLIT) == b"OSRC\x01\x00\x09"
    assert build_packet(ControlCommand.HELLO, request_ack=True) == b"OSRC\x01\x01\x0f"
    assert build_packet(ControlCommand.RESET) == b"OSRC\x01\x00\x07"
    assert build_packet(ControlCommand.PAUSE) == b"OSRC\x01\x00\x0c"


def test_client_binds_ephemeral_port() -> None:
    sock = FakeControlSocket()
    _client(sock)
    assert sock.bound == ("", 0)


def test_actions_send_fire_and_forget_packets() -> None:
    sock = FakeControlSocket()
    client = _client(sock)

    actions = client.actions()
    assert set(actions) == {"split", "reset", "pause"}
    assert actions["split"]() is True
    assert actions["reset"]() is True
    assert actions["pause"]() is True

    assert [data for data, _ in sock.sent] == [
        b"OSRC\x01\x00\x09",
        b"OSRC\x01\x00\x07",
        b"OSRC\x01\x00\x0c",
    ]
    assert all(address == ("127.0.0.1", 6767) for _, address in sock.sent)


def test_send_does_not_mark_peer_connected() -> None:
    sock = FakeControlSocket()
    client = _client(sock)

    client.split()

    assert client.peer_connected is False


def test_send_failure_is_swallowed_and_marks_peer_down() -> None:
    channel = StatusChannel()
    sock = FakeControlSocket([ECHO])
    client = _client(sock, channel)
    client.hello()
    channel.drain()

    sock.send_error = ConnectionRefusedError("refused")

    assert client.split() is False
    assert client.peer_connected is False
    events = channel.drain()
    assert [(e.status, e.message) for e in events] == [(ConnectionStatus.DISCONNECTED, DISCONNECTED_MESSAGE)]


def test_hello_echo_marks_peer_connected() -> None:
    channel = StatusChannel()
    sock = FakeControlSocket([ECHO])
    client = _client(sock, channel)

    assert client.hello() is True
    assert client.peer_connected is True
    assert sock.sent[0][0] == b"OSRC\x01\x01\x0f"
    assert sock.timeout == 0.05
    assert channel.drain()[0].message == CONNECTED_MESSAGE


def test_hello_reports_only_transitions() -> None:
    channel = StatusChannel()
    sock = FakeControlSocket([TimeoutError(), TimeoutError(), ECHO, ECHO, TimeoutError()])
    client = _client(sock, channel)

    results = [client.hello() for _ in range(5)]

    assert results == [False, False, True, True, False]
    events = channel.drain()
    assert all(e.source == CONTROL_SOURCE for e in events)
    assert [e.message for e in events] == [DISCONNECTED_MESSAGE, CONNECTED_MESSAGE, DISCONNECTED_MESSAGE]


def test_hello_rejects_bad_echo() -> None:
    sock = FakeControlSocket([b"OSRC\x01\x01\x00\x00", b"OSRC\x01\x01\x0f"])
    client = _client(sock)

    assert client.hello() is False
    assert client.hello() is False


def test_heartbeat_probes_in_background() -> None:
    sock = FakeControlSocket([ECHO] * 50)
    client = _client(sock)

    client.start_heartbeat(0.01)
    assert sock.hello_seen.wait(2.0)
    client.close()

    assert sock.closed is True
    assert client.peer_connected is False


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeStop:
    def __init__(self, clock: FakeClock, rounds: int) -> None:
        self.clock = clock
        self.rounds = rounds
        self.waits: list[float] = []

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        self.clock.now += timeout
        return len(self.waits) > self.rounds


def test_heartbeat_period_includes_hello_time() -> None:
    clock = FakeClock()
    sock = FakeControlSocket()

    def slow_timeout(size: int):
        clock.now += 0.4
        raise TimeoutError("timed out")

    sock.recvfrom = slow_timeout
    client = ControlClient(socket_factory=lambda family, kind: sock, clock=clock)
    stop = FakeStop(clock, rounds=3)
    client._stop = stop

    client._heartbeat_loop(1.0)

    assert stop.waits == pytest.approx([1.0, 0.6, 0.6, 0.6])
    assert len(sock.sent) == 3


def test_heartbeat_does_not_burst_after_overrun() -> None:
    clock = FakeClock()
    sock = FakeControlSocket()

    def stalled(size: int):
        clock.now += 3.5
        raise TimeoutError("timed out")

    sock.recvfrom = stalled
    client = ControlClient(socket_factory=lambda family, kind: sock, clock=clock)
    stop = FakeStop(clock, rounds=2)
    client._stop = stop

    client._heartbeat_loop(1.0)

    assert stop.waits == pytest.approx([1.0, 0.0, 0.0])


def test_close_without_heartbeat() -> None:
    sock = FakeControlSocket()
    client = _client(sock)
    client.close()
    assert sock.closed is True
