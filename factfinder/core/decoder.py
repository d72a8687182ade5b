"""Little-endian decoding of raw memory bytes into typed values.

Both emulator backends hand their byte slices to :func:`decode_value`, so a
``U16`` watch decodes identically whichever protocol fetched it.
"""

from __future__ import annotations

import struct

from factfinder.core.errors import DecodeError
from factfinder.core.model import VALID_WIDTHS, Value, ValueType

_FORMATS: dict[ValueType, str] = {
    ValueType.BOOL: "<B",
    ValueType.U8: "<B",
    ValueType.I8: "<b",
    ValueType.U16: "<H",
    ValueType.I16: "<h",
    ValueType.U32: "<I",
    ValueType.I32: "<i",
    ValueType.U64: "<Q",
    ValueType.I64: "<q",
}


def popcount(value: int) -> int:
    return bin(value).count("1")


def decode_value(
    value_type: ValueType,
    data: bytes | bytearray | memoryview,
    *,
    name: str = "",
    mask: int | None = None,
) -> Value:
    """Decode ``data`` as ``value_type``.

    Fixed-width types require exactly their natural width. ``FlagCount``
    accepts any width in {1, 2, 4, 8}, applies ``mask`` (all bits when unset)
    and counts the set bits.
    """
    raw = bytes(data)
    if value_type is ValueType.FLAG_COUNT:
        if len(raw) not in VALID_WIDTHS:
            raise DecodeError(
                f"{value_type.value} expects 1, 2, 4 or 8 bytes, got {len(raw)}"
            )
        unsigned = int.from_bytes(raw, "little", signed=False)
        if mask:
            unsigned &= mask
        return Value(name=name, type=value_type, flag_count=popcount(unsigned))

    fmt = _FORMATS.get(value_type)
    if fmt is None:
        raise DecodeError(f"unknown value type {value_type!r}")
    expected = struct.calcsize(fmt)
    if len(raw) != expected:
        raise DecodeError(f"{value_type.value} expects {expected} bytes, got {len(raw)}")

    (number,) = struct.unpack(fmt, raw)
    if value_type is ValueType.BOOL:
        return Value(name=name, type=value_type, boolean=number != 0)
    if value_type.is_signed:
        return Value(name=name, type=value_type, signed=number)
    return Value(name=name, type=value_type, unsigned=number)
