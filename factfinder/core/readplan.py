"""Read plan loading and validation for YAML-based provider read plans."""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from factfinder.core.errors import ProviderLoadError, ReadPlanValidationError
from factfinder.core.model import VALID_WIDTHS, Bank, ReadPlan, ReadSpec, Signal, ValueType

_HEX_RE = re.compile(r"^(0x)?[0-9a-f]+$")
LOGGER = logging.getLogger(__name__)


class PlanLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate keys and keeps numeric scalars as text.

    Addresses and masks are hex without a prefix (``address: 10`` means 0x10),
    so int/float/bool resolution is left to the plan builder.
    """


PlanLoader.yaml_implicit_resolvers = {
    first_char: [
        (tag, regexp)
        for tag, regexp in mappings
        if tag
        not in (
            "tag:yaml.org,2002:bool",
            "tag:yaml.org,2002:int",
            "tag:yaml.org,2002:float",
        )
    ]
    for first_char, mappings in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_mapping(loader: PlanLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ReadPlanValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


PlanLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@lru_cache(maxsize=1)
def _load_schema_validator() -> Any:
    schema_text = resources.files("factfinder.schemas").joinpath("readplan.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def parse_hex(value: str | int, *, context: str) -> int:
    """Parse an unsigned hex literal, optionally ``0x``-prefixed, any case."""
    if isinstance(value, bool):
        raise ReadPlanValidationError(f"{context} must be a hex string")
    if isinstance(value, int):
        if value < 0:
            raise ReadPlanValidationError(f"{context} must not be negative")
        return value
    normalized = value.strip().lower()
    if not _HEX_RE.match(normalized):
        raise ReadPlanValidationError(f"{context} must be a hex literal, got '{value}'")
    return int(normalized, 16)


def _normalize_int(value: str | int, *, context: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip(), 10)
    except ValueError as exc:
        raise ReadPlanValidationError(f"{context} must be a decimal integer") from exc


def _normalize_bool(value: Any, *, context: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off", ""):
            return False
    raise ReadPlanValidationError(f"{context} must be boolean true/false")


def _normalize_bank(value: str | None, *, context: str) -> Bank:
    if value is None or not value.strip():
        return Bank.WRAM
    try:
        return Bank(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(b.value for b in Bank)
        raise ReadPlanValidationError(f"{context} must be one of: {allowed}") from exc


def _normalize_signals(values: list[str] | None, *, context: str) -> frozenset[Signal]:
    signals: set[Signal] = set()
    for raw in values or ():
        try:
            signals.add(Signal(raw.strip().lower()))
        except ValueError as exc:
            allowed = ", ".join(s.value for s in Signal)
            raise ReadPlanValidationError(
                f"{context} has unknown signal '{raw}'. Allowed: {allowed}"
            ) from exc
    return frozenset(signals)


def _build_spec(doc: dict[str, Any], index: int) -> ReadSpec:
    context = f"Watches[{index}]"
    name = doc["name"]
    try:
        value_type = ValueType.parse(doc["type"])
    except ValueError as exc:
        raise ReadPlanValidationError(f"{context} ({name}): {exc}") from exc

    size_override = 0
    if doc.get("size") is not None:
        size_override = _normalize_int(doc["size"], context=f"{context}.size")

    mask = None
    if doc.get("mask") is not None:
        mask = parse_hex(doc["mask"], context=f"{context}.mask") or None

    spec = ReadSpec(
        name=name,
        address=parse_hex(doc["address"], context=f"{context}.address"),
        type=value_type,
        bank=_normalize_bank(doc.get("bank"), context=f"{context}.bank"),
        size_override=size_override,
        mask=mask,
        signals=_normalize_signals(doc.get("signals"), context=f"{context}.signals"),
    )
    if spec.width not in VALID_WIDTHS:
        raise ReadPlanValidationError(
            f"{context} ({name}): byte width {spec.width} for type {value_type.value} "
            f"is not one of 1, 2, 4, 8"
        )
    natural = value_type.natural_width
    if natural and spec.width != natural:
        raise ReadPlanValidationError(
            f"{context} ({name}): size {spec.width} does not match type {value_type.value}, "
            f"which is always {natural} bytes"
        )
    return spec


def build_read_plan(doc: Any, *, source: str = "<read plan>") -> ReadPlan:
    if not isinstance(doc, dict):
        raise ReadPlanValidationError(f"Read plan {source} must contain a mapping at root")

    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ReadPlanValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    read_interval = _normalize_int(doc["ReadInterval"], context="ReadInterval")
    if read_interval <= 0:
        raise ReadPlanValidationError(f"ReadInterval in {source} must be greater than 0")

    watches: list[ReadSpec] = []
    seen: set[str] = set()
    for index, watch_doc in enumerate(doc["Watches"]):
        spec = _build_spec(watch_doc, index)
        if spec.name in seen:
            raise ReadPlanValidationError(f"Duplicate watch name '{spec.name}' in {source}")
        seen.add(spec.name)
        watches.append(spec)

    return ReadPlan(
        name=doc["Name"],
        read_interval=read_interval,
        watches=tuple(watches),
        hirom=_normalize_bool(doc.get("HiROM"), context="HiROM"),
        platform=doc.get("Platform") or "",
    )


def parse(data: bytes, *, source: str = "<read plan>") -> ReadPlan:
    """Parse and validate a read plan document."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ReadPlanValidationError(f"Read plan {source} is not valid UTF-8") from exc

    try:
        doc = yaml.load(text, Loader=PlanLoader)
    except yaml.YAMLError as exc:
        raise ReadPlanValidationError(f"Invalid YAML in {source}: {exc}") from exc

    plan = build_read_plan(doc, source=source)
    LOGGER.debug("Loaded read plan '%s' with %d watches", plan.name, len(plan.watches))
    return plan


def load_read_plan(path: Path) -> ReadPlan:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ProviderLoadError(f"Could not read plan file {path}: {exc}") from exc
    return parse(data, source=str(path))
