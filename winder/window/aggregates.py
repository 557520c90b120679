"""
Ready-made running aggregates for ``WindowActor.with_state``.

Each factory returns ``(initial_state, on_update, on_expire)``; the
aggregate is maintained incrementally, in O(1) per arrival and per expiry:

```python
init, upd, exp = running_mean(field="price")
win = WindowActor.with_state(WindowLength(minutes=5), init, upd, exp)
...
mean_of(await win.external_state())      # 5-minute moving average
```

*field* picks ``payload[field]`` out of mapping payloads; without it the
payload itself must be numeric.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Tuple

Aggregate = Tuple[Any, Callable[[Any, Any], Any], Callable[[Any, Any], Any]]

AGGREGATES = ("none", "count", "sum", "mean")


def _value(payload: Any, field: Optional[str]) -> float:
    raw = payload[field] if field is not None else payload
    if isinstance(raw, bool):
        raise TypeError(f"boolean is not a numeric window value: {raw!r}")
    return float(raw)


def running_count() -> Aggregate:
    return 0, (lambda _p, n: n + 1), (lambda _p, n: n - 1)


def _counted_total(field: Optional[str]) -> Aggregate:
    def update(payload, state):
        count, total = state
        return count + 1, total + _value(payload, field)

    def expire(payload, state):
        count, total = state
        if count <= 1:
            # last one out; reset instead of carrying float residue
            return 0, 0.0
        return count - 1, total - _value(payload, field)

    return (0, 0.0), update, expire


def running_sum(field: Optional[str] = None) -> Aggregate:
    """State is ``(count, total)``; read it with ``sum_of``."""
    return _counted_total(field)


def running_mean(field: Optional[str] = None) -> Aggregate:
    """State is ``(count, total)``; read it with ``mean_of``."""
    return _counted_total(field)


def sum_of(state: Tuple[int, float]) -> float:
    return state[1]


def mean_of(state: Tuple[int, float]) -> Optional[float]:
    count, total = state
    return total / count if count else None


def build(kind: str, field: Optional[str] = None) -> Optional[Aggregate]:
    """Aggregate by config name; ``"none"`` → ``None`` (stateless window)."""
    if kind == "none":
        return None
    if kind == "count":
        return running_count()
    if kind == "sum":
        return running_sum(field)
    if kind == "mean":
        return running_mean(field)
    raise ValueError(f"unknown aggregate {kind!r}; expected one of {AGGREGATES}")


def describe(kind: str, state: Any) -> str:
    """Human-readable aggregate value for log lines."""
    if kind == "mean":
        mean = mean_of(state)
        return "mean=n/a" if mean is None else f"mean={mean:.6g}"
    if kind == "sum":
        return f"sum={sum_of(state):.6g}"
    if kind == "count":
        return f"count={state}"
    return ""
