from __future__ import annotations

from pathlib import Path

import pytest

from factfinder.core.errors import ProviderLoadError, ReadPlanValidationError
from factfinder.core.model import Bank, Signal, ValueType
from factfinder.core.readplan import load_read_plan, parse, parse_hex

VALID_PLAN = b"""
Name: Super Metroid
ReadInterval: 16
HiROM: false
Platform: SNES
Watches:
  - name: hp
    address: "0x09C2"
    type: u16
    signals: [delta, rising, falling]
  - name: room
    address: 79b
    type: U16
    bank: wram
  - name: boss_dead
    address: 0x1F
    type: Bool
    bank: sram
    signals: [edge]
  - name: items
    address: 0x09A4
    type: FlagCount
    size: 2
    mask: 3FFF
"""


def test_parse_valid_plan() -> None:
    plan = parse(VALID_PLAN)

    assert plan.name == "Super Metroid"
    assert plan.read_interval == 16
    assert plan.hirom is False
    assert plan.platform == "SNES"
    assert [w.name for w in plan.watches] == ["hp", "room", "boss_dead", "items"]

    hp = plan.watches[0]
    assert hp.address == 0x09C2
    assert hp.type is ValueType.U16
    assert hp.bank is Bank.WRAM
    assert hp.width == 2
    assert hp.signals == frozenset({Signal.DELTA, Signal.RISING, Signal.FALLING})

    room = plan.watches[1]
    assert room.address == 0x79B
    assert room.signals == frozenset()

    boss = plan.watches[2]
    assert boss.bank is Bank.SRAM
    assert boss.address == 0x1F
    assert boss.width == 1

    items = plan.watches[3]
    assert items.type is ValueType.FLAG_COUNT
    assert items.width == 2
    assert items.mask == 0x3FFF


def test_unprefixed_address_is_hex() -> None:
    plan = parse(
        b"""
Name: Hex
ReadInterval: 100
Watches:
  - name: hp
    address: 10
    type: u16
"""
    )
    assert plan.watches[0].address == 0x10


def test_empty_bank_defaults_to_wram() -> None:
    plan = parse(
        b"""
Name: Bank
ReadInterval: 100
Watches:
  - name: a
    address: 1
    type: u8
    bank: ""
  - name: b
    address: 2
    type: u8
    bank:
"""
    )
    assert [w.bank for w in plan.watches] == [Bank.WRAM, Bank.WRAM]


def test_hirom_string_is_normalized() -> None:
    plan = parse(b"Name: x\nReadInterval: 5\nHiROM: True\nWatches:\n  - {name: a, address: 0, type: i8}\n")
    assert plan.hirom is True


def test_size_override_wins_over_natural_width() -> None:
    plan = parse(b"Name: x\nReadInterval: 5\nWatches:\n  - {name: a, address: 0, type: FlagCount, size: 8}\n")
    assert plan.watches[0].width == 8


def test_size_matching_natural_width_is_accepted() -> None:
    plan = parse(b"Name: x\nReadInterval: 5\nWatches:\n  - {name: a, address: 0, type: u16, size: 2}\n")
    assert plan.watches[0].width == 2


@pytest.mark.parametrize(
    "watch",
    [
        "{name: a, address: 10, type: u8, size: 2}",
        "{name: a, address: 10, type: bool, size: 4}",
        "{name: a, address: 10, type: u16, size: 8}",
        "{name: a, address: 10, type: i32, size: 1}",
    ],
)
def test_size_override_on_fixed_width_type_rejected(watch: str) -> None:
    doc = f"Name: bad\nReadInterval: 10\nWatches:\n  - {watch}\n".encode()
    with pytest.raises(ReadPlanValidationError) as exc:
        parse(doc)
    assert "does not match type" in str(exc.value)


@pytest.mark.parametrize(
    "watch",
    [
        "{name: a, address: 0, type: FlagCount}",
        "{name: a, address: 0, type: u8, size: 3}",
        "{name: a, address: 0, type: u16, size: 16}",
        "{name: a, address: 0, type: float}",
        "{name: a, address: 0, type: u8, signals: [sideways]}",
        "{name: a, address: 0, type: u8, bank: vram}",
        "{name: a, address: zz, type: u8}",
        "{name: a, address: 0, type: u8, mask: -1}",
        "{name: a, type: u8}",
        "{name: a, address: 0, type: u8, colour: red}",
    ],
)
def test_invalid_watch_rejected(watch: str) -> None:
    doc = f"Name: bad\nReadInterval: 10\nWatches:\n  - {watch}\n".encode()
    with pytest.raises(ReadPlanValidationError):
        parse(doc)


def test_zero_read_interval_rejected() -> None:
    with pytest.raises(ReadPlanValidationError):
        parse(b"Name: x\nReadInterval: 0\nWatches:\n  - {name: a, address: 0, type: u8}\n")


def test_missing_watches_rejected() -> None:
    with pytest.raises(ReadPlanValidationError):
        parse(b"Name: x\nReadInterval: 10\n")


def test_duplicate_watch_names_rejected() -> None:
    doc = b"""
Name: dup
ReadInterval: 10
Watches:
  - {name: hp, address: 0, type: u8}
  - {name: hp, address: 1, type: u8}
"""
    with pytest.raises(ReadPlanValidationError) as exc:
        parse(doc)
    assert "hp" in str(exc.value)


def test_duplicate_yaml_keys_rejected() -> None:
    doc = b"""
Name: dup
ReadInterval: 10
ReadInterval: 20
Watches:
  - {name: hp, address: 0, type: u8}
"""
    with pytest.raises(ReadPlanValidationError):
        parse(doc)


def test_non_mapping_root_rejected() -> None:
    with pytest.raises(ReadPlanValidationError):
        parse(b"- just\n- a list\n")


def test_invalid_yaml_rejected() -> None:
    with pytest.raises(ReadPlanValidationError):
        parse(b"Name: [unterminated\n")


def test_parse_hex_literals() -> None:
    assert parse_hex("0x7E", context="t") == 0x7E
    assert parse_hex("0X7e", context="t") == 0x7E
    assert parse_hex(" ff ", context="t") == 0xFF
    assert parse_hex(16, context="t") == 16
    with pytest.raises(ReadPlanValidationError):
        parse_hex("0x", context="t")


def test_load_read_plan_from_file(tmp_path: Path) -> None:
    path = tmp_path / "readplan.yml"
    path.write_bytes(VALID_PLAN)
    assert load_read_plan(path).name == "Super Metroid"


def test_load_read_plan_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ProviderLoadError):
        load_read_plan(tmp_path / "missing.yml")
