"""
WindowActor
===========

A sliding time window run as a single asyncio task.  Arrivals, queries,
timer ticks and the stop request are all messages on one FIFO inbox, so
the window and its external state are only ever touched by one handler at
a time and need no locks.

```python
avg = WindowActor.with_state(
    WindowLength(minutes=5),
    (0, 0.0),
    on_update=lambda x, s: (s[0] + 1, s[1] + x),
    on_expire=lambda x, s: (s[0] - 1, s[1] - x),
)
await avg.start()
avg.submit(42.0)                    # fire-and-forget
await avg.snapshot()                # [(datetime, 42.0)]
await avg.external_state()          # (1, 42.0)
await avg.stop()
```

Callbacks run inside the actor: a slow callback stalls every other
operation on the window.  A callback that raises stops the window; the
``CallbackError`` is re-raised from ``join()`` for whoever supervises it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from winder.errors import CallbackError, ClosedError, ConfigurationError
from winder.window import transitions
from winder.window.callbacks import Callbacks, SideEffectCallbacks, StateCallbacks
from winder.window.clock import (
    Clock,
    IntervalTicker,
    SystemClock,
    TickSource,
    default_tick_ms,
)
from winder.window.metrics import (
    CALLBACK_FAILURES,
    ENTRIES_EXPIRED,
    ENTRIES_SUBMITTED,
    SWEEPS,
    WINDOW_ENTRIES,
)
from winder.window.model import ABSENT, Entry, WindowLength, WindowState

logger = logging.getLogger(__name__)

__all__ = ["WindowActor"]


# --------------------------------------------------------------------------- #
# inbox messages                                                              #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class _Submit:
    entry: Entry


@dataclass(frozen=True)
class _Query:
    kind: str  # "snapshot" | "external_state"
    reply: asyncio.Future


_TICK = object()
_STOP = object()


class WindowActor:
    def __init__(
        self,
        length: Any,
        on_update: Optional[Callable[[Any], Any]] = None,
        on_expire: Optional[Callable[[Any], Any]] = None,
        *,
        clock: Optional[Clock] = None,
        ticker: Optional[TickSource] = None,
        tick_ms: Optional[int] = None,
    ):
        """
        Stateless window: callbacks take the payload only and their return
        value is ignored.  Use ``with_state`` for an accumulating window.

        Parameters
        ----------
        length : WindowLength | int ms | timedelta | (h, m, s[, ms]) | mapping
        clock  : epoch-ms source, ``SystemClock`` by default
        ticker : sweep trigger; default is an ``IntervalTicker(tick_ms)``
        tick_ms: sweep interval, derived from *length* when omitted
        """
        self.length = WindowLength.parse(length)
        self.length_ms = self.length.to_milliseconds()

        if ticker is None:
            if tick_ms is None:
                tick_ms = default_tick_ms(self.length_ms)
            if isinstance(tick_ms, bool) or not isinstance(tick_ms, int) or tick_ms <= 0:
                raise ConfigurationError(f"tick_ms must be a positive integer, got {tick_ms!r}")
            ticker = IntervalTicker(tick_ms)

        self._clock: Clock = clock or SystemClock()
        self._ticker = ticker
        self._callbacks: Callbacks = SideEffectCallbacks(on_update, on_expire)
        self._state = WindowState(length_ms=self.length_ms)

        self._inbox: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._started = False
        self._closed = False
        self._failure: Optional[CallbackError] = None

    @classmethod
    def with_state(
        cls,
        length: Any,
        initial_state: Any,
        on_update: Optional[Callable[[Any, Any], Any]] = None,
        on_expire: Optional[Callable[[Any, Any], Any]] = None,
        **options: Any,
    ) -> "WindowActor":
        """Window carrying an external state; callbacks return the new state."""
        if initial_state is ABSENT:
            raise ConfigurationError("with_state() needs an initial state")
        actor = cls(length, **options)
        actor._callbacks = StateCallbacks(on_update, on_expire)
        actor._state = actor._state.evolve(external=initial_state)
        return actor

    # ------------------------------------------------------------------ #
    # life-cycle                                                         #
    # ------------------------------------------------------------------ #
    async def start(self) -> "WindowActor":
        if self._started:
            raise RuntimeError("window already started")
        self._started = True
        self._inbox = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="winder.window")
        self._ticker.start(self._on_tick)
        logger.info(
            "Window started (length=%d ms, external state=%s)",
            self.length_ms,
            "yes" if self._state.has_external else "no",
        )
        return self

    async def stop(self) -> None:
        """Stop after everything already in the inbox; idempotent."""
        if not self._started:
            self._closed = True
            return
        if not self._closed:
            self._closed = True
            self._inbox.put_nowait(_STOP)
        await asyncio.shield(self._task)

    async def join(self) -> None:
        """Wait until the window stops; re-raise the callback fault if any."""
        if self._task is not None:
            await asyncio.shield(self._task)
        if self._failure is not None:
            raise self._failure

    async def __aenter__(self) -> "WindowActor":
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._started and not self._closed

    @property
    def failure(self) -> Optional[CallbackError]:
        return self._failure

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #
    def submit(self, payload: Any) -> None:
        """Timestamp *payload* now and queue it; never blocks."""
        self._ensure_open()
        self._inbox.put_nowait(_Submit(Entry(self._clock.now_ms(), payload)))

    async def snapshot(self) -> List[Tuple[datetime, Any]]:
        return await self._request("snapshot")

    async def external_state(self) -> Any:
        return await self._request("external_state")

    # ------------------------------------------------------------------ #
    # internal                                                           #
    # ------------------------------------------------------------------ #
    def _ensure_open(self) -> None:
        if not self._started:
            raise ClosedError("window has not been started")
        if self._closed:
            raise ClosedError("window is stopped")

    async def _request(self, kind: str) -> Any:
        self._ensure_open()
        reply = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Query(kind, reply))
        return await reply

    def _on_tick(self) -> None:
        if not self._closed:
            self._inbox.put_nowait(_TICK)

    async def _run(self) -> None:
        try:
            while True:
                msg = await self._inbox.get()
                if msg is _STOP:
                    break
                self._handle(msg)
        except CallbackError as exc:
            self._failure = exc
            CALLBACK_FAILURES.labels(exc.callback).inc()
            logger.exception("Window %s callback failed, stopping window", exc.callback)
        finally:
            self._closed = True
            self._fail_pending()
            await self._ticker.stop()
            logger.info("Window stopped with %d entries", len(self._state.entries))

    def _handle(self, msg: Any) -> None:
        if msg is _TICK:
            self._sweep()
        elif isinstance(msg, _Submit):
            self._state, _ = transitions.arrive(self._state, self._callbacks, msg.entry)
            ENTRIES_SUBMITTED.inc()
        elif isinstance(msg, _Query):
            if msg.reply.done():  # requester went away
                return
            if msg.kind == "snapshot":
                msg.reply.set_result(transitions.snapshot(self._state))
            else:
                msg.reply.set_result(self._state.external)
            return
        WINDOW_ENTRIES.set(len(self._state.entries))

    def _sweep(self) -> None:
        now = self._clock.now_ms()
        self._state, expired = transitions.sweep(self._state, self._callbacks, now)
        SWEEPS.inc()
        if expired:
            ENTRIES_EXPIRED.inc(len(expired))
            logger.debug(
                "Expired %d entries at %d ms (%d kept)",
                len(expired),
                now,
                len(self._state.entries),
            )

    def _fail_pending(self) -> None:
        dropped = 0
        while not self._inbox.empty():
            msg = self._inbox.get_nowait()
            if isinstance(msg, _Query) and not msg.reply.done():
                err = ClosedError("window stopped before the request was served")
                err.__cause__ = self._failure
                msg.reply.set_exception(err)
            elif isinstance(msg, _Submit):
                dropped += 1
        if dropped:
            logger.warning("Dropped %d submitted entries queued after the window stopped", dropped)
