"""Fact builder script loading and callback resolution.

A fact builder is a Python file. It may define any of the signal callbacks
below plus ``onTick(values)``, and may call ``split()``, ``reset()`` and
``pause()``, which are injected into its globals before it runs.
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from factfinder.core.errors import ScriptLoadError

DELTA_SIGNED = "deltaSigned"
DELTA_UNSIGNED = "deltaUnsigned"
RISING_SIGNED = "risingSigned"
FALLING_SIGNED = "fallingSigned"
RISING_UNSIGNED = "risingUnsigned"
FALLING_UNSIGNED = "fallingUnsigned"
EDGE = "edge"
ON_TICK = "onTick"
STATE = "state"
SCRIPT_MODULE = "factbuilder"

Callback = Callable[..., Any]
LOGGER = logging.getLogger(__name__)


def _pick(namespace: Mapping[str, Any], name: str) -> Callback | None:
    candidate = namespace.get(name)
    if candidate is None:
        return None
    if not callable(candidate):
        LOGGER.warning("Script global '%s' is not callable, ignoring it", name)
        return None
    return candidate


@dataclass(frozen=True)
class ScriptCallbacks:
    """Callback table resolved once per loaded script; absent entries are None."""

    delta_signed: Callback | None = None
    delta_unsigned: Callback | None = None
    rising_signed: Callback | None = None
    falling_signed: Callback | None = None
    rising_unsigned: Callback | None = None
    falling_unsigned: Callback | None = None
    edge: Callback | None = None
    on_tick: Callback | None = None

    @classmethod
    def resolve(cls, namespace: Mapping[str, Any]) -> ScriptCallbacks:
        return cls(
            delta_signed=_pick(namespace, DELTA_SIGNED),
            delta_unsigned=_pick(namespace, DELTA_UNSIGNED),
            rising_signed=_pick(namespace, RISING_SIGNED),
            falling_signed=_pick(namespace, FALLING_SIGNED),
            rising_unsigned=_pick(namespace, RISING_UNSIGNED),
            falling_unsigned=_pick(namespace, FALLING_UNSIGNED),
            edge=_pick(namespace, EDGE),
            on_tick=_pick(namespace, ON_TICK),
        )


class ScriptHost:
    def __init__(self, namespace: dict[str, Any]) -> None:
        self.namespace = namespace
        self.callbacks = ScriptCallbacks.resolve(namespace)

    @classmethod
    def load(cls, path: Path, actions: Mapping[str, Callable[[], Any]]) -> ScriptHost:
        if not path.is_file():
            raise ScriptLoadError(f"Could not read fact builder script {path}: no such file")

        spec = importlib.util.spec_from_file_location(SCRIPT_MODULE, path)
        if spec is None or spec.loader is None:
            raise ScriptLoadError(f"Could not create a module spec for fact builder script {path}")

        module = importlib.util.module_from_spec(spec)
        for name, action in actions.items():
            setattr(module, name, action)
        try:
            spec.loader.exec_module(module)
        except Exception as exc:
            raise ScriptLoadError(f"Could not load fact builder script {path}: {exc}") from exc

        host = cls(vars(module))
        if host.callbacks.on_tick is None:
            LOGGER.info("%s not present in %s", ON_TICK, path.name)
        return host

    def state_items(self) -> list[tuple[str, str]]:
        state = self.namespace.get(STATE)
        if not isinstance(state, Mapping):
            return []
        return sorted((str(key), str(value)) for key, value in state.items())
