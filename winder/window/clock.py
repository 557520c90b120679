"""
Time sources for the window actor.

``Clock``       – non-decreasing epoch-millisecond source (``now_ms``)
``TickSource``  – periodic trigger for expiration sweeps

Production code uses ``SystemClock`` + ``IntervalTicker``; tests and
replays of recorded data use ``ManualClock`` + ``ManualTicker`` to drive
sweeps deterministically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

MIN_TICK_MS = 1
MAX_TICK_MS = 1000
SWEEPS_PER_WINDOW = 250


class Clock(Protocol):
    def now_ms(self) -> int: ...


class TickSource(Protocol):
    def start(self, emit: Callable[[], None]) -> None: ...

    async def stop(self) -> None: ...


def default_tick_ms(length_ms: int) -> int:
    """
    Sweep interval derived from the window length.

    Eviction lags by at most one tick; a finer tick costs more sweeps.
    ``length / 250`` keeps the lag under half a percent of the window,
    clamped to 1 ms … 1 s.
    """
    return max(MIN_TICK_MS, min(MAX_TICK_MS, length_ms // SWEEPS_PER_WINDOW))


# --------------------------------------------------------------------------- #
# clocks                                                                      #
# --------------------------------------------------------------------------- #
class SystemClock:
    """Wall clock in epoch-ms that never steps backwards."""

    def __init__(self):
        self._last = 0

    def now_ms(self) -> int:
        now = int(time.time() * 1000)
        if now < self._last:
            now = self._last
        self._last = now
        return now


class ManualClock:
    def __init__(self, start_ms: int = 0):
        self._now = int(start_ms)

    def now_ms(self) -> int:
        return self._now

    def set(self, now_ms: int) -> None:
        if now_ms < self._now:
            raise ValueError(f"clock cannot go backwards ({now_ms} < {self._now})")
        self._now = int(now_ms)

    def advance(self, delta_ms: int) -> None:
        self.set(self._now + delta_ms)


# --------------------------------------------------------------------------- #
# tick sources                                                                #
# --------------------------------------------------------------------------- #
class IntervalTicker:
    """Calls *emit* every ``interval_ms`` from a background asyncio task."""

    def __init__(self, interval_ms: int):
        if interval_ms <= 0:
            raise ValueError("tick interval must be positive")
        self.interval_ms = interval_ms
        self._task: Optional[asyncio.Task] = None

    def start(self, emit: Callable[[], None]) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(emit), name="winder.ticker"
        )

    async def _run(self, emit: Callable[[], None]) -> None:
        delay = self.interval_ms / 1000
        while True:
            await asyncio.sleep(delay)
            emit()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class ManualTicker:
    """Sweeps happen only when ``tick()`` is called."""

    def __init__(self):
        self._emit: Optional[Callable[[], None]] = None

    def start(self, emit: Callable[[], None]) -> None:
        self._emit = emit

    def tick(self) -> None:
        if self._emit is None:
            raise RuntimeError("ticker is not attached to a running window")
        self._emit()

    async def stop(self) -> None:
        self._emit = None
