"""
The two callback shapes a window can be started with.

``SideEffectCallbacks``  – ``update(payload)`` / ``expire(payload)``, no state
``StateCallbacks``       – ``update(payload, state) -> state`` and
                           ``expire(payload, state) -> state``

The shape is picked once, by the ``WindowActor`` constructor the caller
used; the transitions only ever talk to the common interface below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Protocol

from winder.errors import CallbackError

UpdateFn = Callable[..., Any]
ExpireFn = Callable[..., Any]


class Callbacks(Protocol):
    @property
    def has_expire(self) -> bool: ...

    def on_arrival(self, payload: Any, state: Any) -> Any: ...

    def fold_expired(self, payloads: Iterable[Any], state: Any) -> Any: ...


def _invoke(name: str, fn: Callable[..., Any], payload: Any, *args: Any) -> Any:
    try:
        return fn(payload, *args)
    except Exception as exc:  # noqa: BLE001
        raise CallbackError(name, payload) from exc


@dataclass(frozen=True)
class SideEffectCallbacks:
    update: Optional[Callable[[Any], Any]] = None
    expire: Optional[Callable[[Any], Any]] = None

    @property
    def has_expire(self) -> bool:
        return self.expire is not None

    def on_arrival(self, payload: Any, state: Any) -> Any:
        if self.update is not None:
            _invoke("update", self.update, payload)
        return state

    def fold_expired(self, payloads: Iterable[Any], state: Any) -> Any:
        if self.expire is not None:
            for payload in payloads:
                _invoke("expire", self.expire, payload)
        return state


@dataclass(frozen=True)
class StateCallbacks:
    update: Optional[Callable[[Any, Any], Any]] = None
    expire: Optional[Callable[[Any, Any], Any]] = None

    @property
    def has_expire(self) -> bool:
        return self.expire is not None

    def on_arrival(self, payload: Any, state: Any) -> Any:
        if self.update is None:
            return state
        return _invoke("update", self.update, payload, state)

    def fold_expired(self, payloads: Iterable[Any], state: Any) -> Any:
        # oldest first; every step sees the previous step's result
        if self.expire is None:
            return state
        for payload in payloads:
            state = _invoke("expire", self.expire, payload, state)
        return state
