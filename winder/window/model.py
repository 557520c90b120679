"""
Window data model
=================

* ``WindowLength`` – hours / minutes / seconds / milliseconds, normalised
  once to an integer millisecond count
* ``Entry``        – ``(timestamp_ms, payload)``, immutable
* ``WindowState``  – the actor's data: length, ordered entries and the
  external accumulator (or ``ABSENT``)

Every handler returns a new ``WindowState``.  The entries deque is the one
exception: it is shared along the chain of states and appended to or popped
from in place, once the callbacks for that step have succeeded.
"""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Deque, Mapping

from winder.errors import ConfigurationError


class _Absent(enum.Enum):
    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


# external state when the window was started without one (None is a valid state)
ABSENT = _Absent.ABSENT


# --------------------------------------------------------------------------- #
# window length                                                               #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class WindowLength:
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    milliseconds: int = 0

    def __post_init__(self):
        for name in ("hours", "minutes", "seconds", "milliseconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"window length {name} must be an integer, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"window length {name} must not be negative")
        if self.to_milliseconds() <= 0:
            raise ConfigurationError("window length must be greater than zero")

    def to_milliseconds(self) -> int:
        return (
            self.hours * 3_600_000
            + self.minutes * 60_000
            + self.seconds * 1000
            + self.milliseconds
        )

    @classmethod
    def parse(cls, value: Any) -> "WindowLength":
        """
        Accept the shapes a caller or a YAML file is likely to hand us:

        * ``WindowLength``                      – returned as-is
        * ``int``                               – milliseconds
        * ``timedelta``                         – whole milliseconds
        * ``(h, m, s)`` / ``(h, m, s, ms)``      – tuple or list
        * ``{"minutes": 5, ...}``               – mapping of the field names
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ConfigurationError(f"unsupported window length: {value!r}")
        if isinstance(value, int):
            return cls(milliseconds=value)
        if isinstance(value, timedelta):
            return cls(milliseconds=value // timedelta(milliseconds=1))
        if isinstance(value, (tuple, list)):
            if len(value) not in (3, 4):
                raise ConfigurationError(
                    "window length tuple must be (hours, minutes, seconds[, milliseconds])"
                )
            return cls(*value)
        if isinstance(value, Mapping):
            unknown = set(value) - {"hours", "minutes", "seconds", "milliseconds"}
            if unknown:
                raise ConfigurationError(f"unknown window length field(s): {sorted(unknown)}")
            return cls(**{k: v for k, v in value.items() if v is not None})
        raise ConfigurationError(f"unsupported window length: {value!r}")


# --------------------------------------------------------------------------- #
# entries & state                                                             #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class Entry:
    timestamp_ms: int
    payload: Any


@dataclass(frozen=True)
class WindowState:
    length_ms: int
    entries: Deque[Entry] = field(default_factory=deque)
    external: Any = field(default=ABSENT)

    @property
    def has_external(self) -> bool:
        return self.external is not ABSENT

    def evolve(self, **changes) -> "WindowState":
        return replace(self, **changes)
