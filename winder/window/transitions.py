"""
State transitions of the window.

Each function takes the current ``WindowState`` and returns the next one
(plus a result where there is one).  Nothing here touches the clock, the
inbox or the metrics; the actor feeds ``now`` in and commits what comes out.

Entries live in a ``deque`` shared by consecutive states: ``arrive`` appends
and ``sweep`` pops from the left, so both cost O(1) per entry they touch.
Callbacks always run first; the deque only changes once they have returned.
"""

from __future__ import annotations

from datetime import datetime, timezone
from itertools import islice
from typing import Any, List, Tuple

from winder.window.callbacks import Callbacks
from winder.window.model import Entry, WindowState


def ms_to_datetime(ts_ms: int) -> datetime:
    """Epoch milliseconds → aware UTC datetime."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)


def is_expired(entry: Entry, now_ms: int, length_ms: int) -> bool:
    return now_ms - entry.timestamp_ms > length_ms


def expired_count(state: WindowState, now_ms: int) -> int:
    """Length of the expired prefix; entries are in timestamp order."""
    n = 0
    for entry in state.entries:
        if not is_expired(entry, now_ms, state.length_ms):
            break
        n += 1
    return n


def arrive(
    state: WindowState, callbacks: Callbacks, entry: Entry
) -> Tuple[WindowState, Entry]:
    """Run the update callback, then append *entry*."""
    external = callbacks.on_arrival(entry.payload, state.external)
    state.entries.append(entry)
    return state.evolve(external=external), entry


def sweep(
    state: WindowState, callbacks: Callbacks, now_ms: int
) -> Tuple[WindowState, Tuple[Entry, ...]]:
    """
    Drop every entry older than the window and fold the expire callback
    over them, oldest first.

    The fold runs to completion before anything is committed: if a callback
    raises, the exception propagates and *state* is left exactly as it was.
    With nothing expired the very same state object comes back.
    """
    n = expired_count(state, now_ms)
    if not n:
        return state, ()

    expired = tuple(islice(state.entries, n))
    external = state.external
    if callbacks.has_expire:
        external = callbacks.fold_expired((e.payload for e in expired), external)
    for _ in range(n):
        state.entries.popleft()
    return state.evolve(external=external), expired


def snapshot(state: WindowState) -> List[Tuple[datetime, Any]]:
    return [(ms_to_datetime(e.timestamp_ms), e.payload) for e in state.entries]
