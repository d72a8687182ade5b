"""Core data models used across the read plan loader, backends, and engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

VALID_WIDTHS = frozenset({1, 2, 4, 8})


class ValueType(str, Enum):
    I8 = "I8"
    I16 = "I16"
    I32 = "I32"
    I64 = "I64"
    U8 = "U8"
    U16 = "U16"
    U32 = "U32"
    U64 = "U64"
    BOOL = "Bool"
    FLAG_COUNT = "FlagCount"

    @classmethod
    def parse(cls, raw: str) -> ValueType:
        lowered = raw.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise ValueError(f"unknown value type '{raw}'")

    @property
    def natural_width(self) -> int:
        """Byte width implied by the type, 0 when the type has none."""
        return _NATURAL_WIDTHS.get(self, 0)

    @property
    def is_signed(self) -> bool:
        return self in (ValueType.I8, ValueType.I16, ValueType.I32, ValueType.I64)

    @property
    def is_unsigned(self) -> bool:
        return self in (ValueType.U8, ValueType.U16, ValueType.U32, ValueType.U64)


_NATURAL_WIDTHS = {
    ValueType.BOOL: 1,
    ValueType.I8: 1,
    ValueType.U8: 1,
    ValueType.I16: 2,
    ValueType.U16: 2,
    ValueType.I32: 4,
    ValueType.U32: 4,
    ValueType.I64: 8,
    ValueType.U64: 8,
}


class Bank(str, Enum):
    WRAM = "wram"
    SRAM = "sram"


class Signal(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    DELTA = "delta"
    EDGE = "edge"


class ConnectionStatus(IntEnum):
    DISCONNECTED = 0
    CONNECTED = 1
    RECONNECTING = 2
    WAITING_FOR_GAME = 3


@dataclass(frozen=True)
class ReadSpec:
    name: str
    address: int
    type: ValueType
    bank: Bank = Bank.WRAM
    size_override: int = 0
    mask: int | None = None
    signals: frozenset[Signal] = field(default_factory=frozenset)

    @property
    def width(self) -> int:
        if self.size_override > 0:
            return self.size_override
        return self.type.natural_width


@dataclass(frozen=True)
class ReadPlan:
    name: str
    read_interval: int
    watches: tuple[ReadSpec, ...]
    hirom: bool = False
    platform: str = ""

    def watch(self, name: str) -> ReadSpec | None:
        for spec in self.watches:
            if spec.name == name:
                return spec
        return None


@dataclass(frozen=True)
class Value:
    name: str
    type: ValueType
    signed: int | None = None
    unsigned: int | None = None
    boolean: bool | None = None
    flag_count: int | None = None

    @property
    def payload(self) -> int | bool | None:
        if self.type.is_signed:
            return self.signed
        if self.type.is_unsigned:
            return self.unsigned
        if self.type is ValueType.BOOL:
            return self.boolean
        return self.flag_count


@dataclass(frozen=True)
class StatusEvent:
    source: str
    status: ConnectionStatus
    message: str


@dataclass(frozen=True)
class Settings:
    emulator_host: str = "localhost"
    emulator_port: int = 55355
    control_host: str = "127.0.0.1"
    control_port: int = 6767
    retry_interval_s: float = 1.0
    heartbeat_interval_s: float = 1.0
    status_queue_size: int = 16
