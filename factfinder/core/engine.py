"""Signal detection over successive batches of watch values."""

from __future__ import annotations

import logging
from typing import Any

from factfinder.core.errors import CallbackError
from factfinder.core.model import ReadPlan, Signal, Value, ValueType
from factfinder.core.script import (
    DELTA_SIGNED,
    DELTA_UNSIGNED,
    EDGE,
    FALLING_SIGNED,
    FALLING_UNSIGNED,
    ON_TICK,
    RISING_SIGNED,
    RISING_UNSIGNED,
    Callback,
    ScriptCallbacks,
)

LOGGER = logging.getLogger(__name__)


class SignalEngine:
    """Diffs each watch against its last value and dispatches script callbacks.

    The first sample for a watch only establishes a baseline. Numeric watches
    fire ``delta`` then ``rising`` or ``falling``; boolean watches fire ``edge``
    when they flip. ``FlagCount`` watches are cached but never diffed.
    """

    def __init__(self, callbacks: ScriptCallbacks | None = None) -> None:
        self.callbacks = callbacks or ScriptCallbacks()
        self._values: dict[str, Value] = {}
        self._signals: dict[str, frozenset[Signal]] = {}

    def reset(self, callbacks: ScriptCallbacks | None = None) -> None:
        self._values.clear()
        self._signals.clear()
        if callbacks is not None:
            self.callbacks = callbacks

    def last_value(self, name: str) -> Value | None:
        return self._values.get(name)

    def subscriptions(self, name: str) -> frozenset[Signal]:
        return self._signals.get(name, frozenset())

    def snapshot(self) -> dict[str, int | bool | None]:
        return {name: value.payload for name, value in self._values.items()}

    def process(self, plan: ReadPlan, values: list[Value]) -> list[CallbackError]:
        errors: list[CallbackError] = []
        for new in values:
            old = self._values.get(new.name)
            if old is None:
                spec = plan.watch(new.name)
                self._signals[new.name] = spec.signals if spec is not None else frozenset()
                self._values[new.name] = new
                continue

            errors.extend(self._compare(old, new))
            self._values[new.name] = new

        if self.callbacks.on_tick is not None:
            error = self._invoke(ON_TICK, self.callbacks.on_tick, None, self.snapshot())
            if error is not None:
                errors.append(error)
        return errors

    def _compare(self, old: Value, new: Value) -> list[CallbackError]:
        signals = self._signals.get(new.name, frozenset())
        if old.type.is_signed:
            return self._compare_numeric(
                new.name,
                old.signed,
                new.signed,
                signals,
                (DELTA_SIGNED, self.callbacks.delta_signed),
                (RISING_SIGNED, self.callbacks.rising_signed),
                (FALLING_SIGNED, self.callbacks.falling_signed),
            )
        if old.type.is_unsigned:
            return self._compare_numeric(
                new.name,
                old.unsigned,
                new.unsigned,
                signals,
                (DELTA_UNSIGNED, self.callbacks.delta_unsigned),
                (RISING_UNSIGNED, self.callbacks.rising_unsigned),
                (FALLING_UNSIGNED, self.callbacks.falling_unsigned),
            )
        if old.type is ValueType.BOOL:
            if Signal.EDGE in signals and old.boolean != new.boolean:
                error = self._invoke(EDGE, self.callbacks.edge, new.name, new.name, new.boolean)
                return [error] if error is not None else []
        return []

    def _compare_numeric(
        self,
        name: str,
        old: int | None,
        new: int | None,
        signals: frozenset[Signal],
        delta: tuple[str, Callback | None],
        rising: tuple[str, Callback | None],
        falling: tuple[str, Callback | None],
    ) -> list[CallbackError]:
        if old is None or new is None or old == new:
            return []

        fired: list[tuple[str, Callback | None]] = []
        if Signal.DELTA in signals:
            fired.append(delta)
        if Signal.RISING in signals and new > old:
            fired.append(rising)
        elif Signal.FALLING in signals and new < old:
            fired.append(falling)

        errors: list[CallbackError] = []
        for label, callback in fired:
            error = self._invoke(label, callback, name, name, old, new)
            if error is not None:
                errors.append(error)
        return errors

    def _invoke(self, label: str, callback: Callback | None, watch: str | None, *args: Any) -> CallbackError | None:
        if callback is None:
            return None
        try:
            callback(*args)
        except Exception as exc:
            LOGGER.exception("Script callback '%s' failed", label)
            return CallbackError(label, watch, exc)
        return None
