from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from winder.errors import CallbackError, ClosedError, ConfigurationError
from winder.window.actor import WindowActor
from winder.window.clock import IntervalTicker, ManualClock, ManualTicker
from winder.window.model import ABSENT, WindowLength


def _payloads(snapshot):
    return [payload for _, payload in snapshot]


def _manual(**kw):
    clock = ManualClock(0)
    ticker = ManualTicker()
    return clock, ticker, dict(clock=clock, ticker=ticker, **kw)


def test_scenario_sweep_expires_only_old_entry_once() -> None:
    expired = []

    async def scenario():
        clock, ticker, opts = _manual()
        win = await WindowActor(WindowLength(seconds=1), on_expire=expired.append, **opts).start()
        win.submit("a")
        clock.set(500)
        win.submit("b")
        clock.set(1100)
        ticker.tick()
        first = await win.snapshot()
        ticker.tick()
        second = await win.snapshot()
        await win.stop()
        return first, second

    first, second = asyncio.run(scenario())
    assert _payloads(first) == ["b"]
    assert _payloads(second) == ["b"]
    assert expired == ["a"]


def test_external_state_survives_expiration() -> None:
    n = 25

    async def scenario():
        clock, ticker, opts = _manual()
        win = WindowActor.with_state(
            100, 1000, on_update=lambda p, s: s, on_expire=lambda p, s: s + 1, **opts
        )
        async with win:
            for i in range(n):
                win.submit(i)
            clock.advance(101)
            ticker.tick()
            return await win.external_state(), await win.snapshot()

    state, snapshot = asyncio.run(scenario())
    assert state == 1000 + n
    assert snapshot == []


def test_update_callback_threads_state_on_arrival() -> None:
    async def scenario():
        _, _, opts = _manual()
        async with WindowActor.with_state(1000, [], on_update=lambda p, s: s + [p], **opts) as win:
            for p in "xyz":
                win.submit(p)
            return await win.external_state()

    assert asyncio.run(scenario()) == ["x", "y", "z"]


def test_none_is_a_valid_external_state() -> None:
    async def scenario():
        _, _, opts = _manual()
        async with WindowActor.with_state(1000, None, **opts) as win:
            win.submit("p")
            return await win.external_state()

    assert asyncio.run(scenario()) is None


def test_stateless_window_reports_absent_and_calls_update_for_side_effects() -> None:
    seen = []

    async def scenario():
        _, _, opts = _manual()
        async with WindowActor(1000, on_update=seen.append, **opts) as win:
            win.submit({"k": 1})
            return await win.external_state()

    assert asyncio.run(scenario()) is ABSENT
    assert seen == [{"k": 1}]


def test_no_callback_scenario_drops_entries_and_keeps_state() -> None:
    async def scenario():
        clock, ticker, opts = _manual()
        async with WindowActor.with_state(100, "untouched", **opts) as win:
            win.submit("x")
            clock.set(10_000)
            ticker.tick()
            return await win.snapshot(), await win.external_state()

    snapshot, state = asyncio.run(scenario())
    assert snapshot == []
    assert state == "untouched"


def test_empty_sweep_leaves_window_unchanged() -> None:
    async def scenario():
        clock, ticker, opts = _manual()
        async with WindowActor.with_state(
            1000, 0, on_update=lambda p, s: s + 1, on_expire=lambda p, s: s - 1, **opts
        ) as win:
            win.submit("a")
            clock.set(10)
            win.submit("b")
            before = (await win.snapshot(), await win.external_state())
            clock.set(900)
            ticker.tick()
            ticker.tick()
            after = (await win.snapshot(), await win.external_state())
            return before, after

    before, after = asyncio.run(scenario())
    assert before == after
    assert before[1] == 2


def test_snapshot_preserves_order_and_converts_timestamps() -> None:
    async def scenario():
        clock, _, opts = _manual()
        clock.set(1_700_000_000_000)
        async with WindowActor(WindowLength(hours=1), **opts) as win:
            for i in range(5):
                win.submit(i)
                clock.advance(250)
            return await win.snapshot()

    snapshot = asyncio.run(scenario())
    assert _payloads(snapshot) == [0, 1, 2, 3, 4]
    stamps = [ts for ts, _ in snapshot]
    assert stamps == sorted(stamps)
    assert stamps[0] == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert (stamps[-1] - stamps[0]).total_seconds() == 1.0


def test_stop_then_submit_raises_closed_error() -> None:
    async def scenario():
        _, _, opts = _manual()
        win = await WindowActor(1000, **opts).start()
        win.submit("kept")
        await win.stop()
        await win.stop()  # idempotent
        with pytest.raises(ClosedError):
            win.submit("late")
        with pytest.raises(ClosedError):
            await win.snapshot()
        with pytest.raises(ClosedError):
            await win.external_state()
        await win.join()
        return win

    win = asyncio.run(scenario())
    assert not win.running
    assert win.failure is None


def test_submissions_before_stop_are_processed() -> None:
    seen = []

    async def scenario():
        _, _, opts = _manual()
        win = await WindowActor(1000, on_update=seen.append, **opts).start()
        for i in range(3):
            win.submit(i)
        await win.stop()

    asyncio.run(scenario())
    assert seen == [0, 1, 2]


def test_operations_before_start_raise_closed_error() -> None:
    win = WindowActor(1000, ticker=ManualTicker())
    with pytest.raises(ClosedError):
        win.submit("x")


def test_failing_callback_stops_window_and_surfaces_from_join() -> None:
    def boom(payload, state):
        raise RuntimeError(f"cannot expire {payload}")

    async def scenario():
        clock, ticker, opts = _manual()
        win = WindowActor.with_state(100, 0, on_update=lambda p, s: s + 1, on_expire=boom, **opts)
        await win.start()
        win.submit("x")
        clock.set(500)
        ticker.tick()
        pending = asyncio.ensure_future(win.snapshot())
        with pytest.raises(CallbackError) as info:
            await win.join()
        with pytest.raises(ClosedError):
            await pending
        with pytest.raises(ClosedError):
            win.submit("y")
        await win.stop()
        return win, info.value

    win, err = asyncio.run(scenario())
    assert err.callback == "expire"
    assert err.payload == "x"
    assert isinstance(err.__cause__, RuntimeError)
    assert win.failure is err
    assert not win.running


def test_with_state_requires_a_state() -> None:
    with pytest.raises(ConfigurationError):
        WindowActor.with_state(1000, ABSENT)


def test_invalid_length_and_tick_are_configuration_errors() -> None:
    with pytest.raises(ConfigurationError):
        WindowActor(0)
    with pytest.raises(ConfigurationError):
        WindowActor(1000, tick_ms=0)


def test_default_ticker_is_derived_from_length() -> None:
    win = WindowActor(WindowLength(minutes=5))
    assert isinstance(win._ticker, IntervalTicker)
    assert win._ticker.interval_ms == 1000
    assert WindowActor(1000, tick_ms=7)._ticker.interval_ms == 7


def test_start_twice_is_rejected() -> None:
    async def scenario():
        win = await WindowActor(1000, ticker=ManualTicker()).start()
        try:
            with pytest.raises(RuntimeError):
                await win.start()
        finally:
            await win.stop()

    asyncio.run(scenario())


def test_interval_ticker_drives_expiration_in_running_window() -> None:
    expired = []

    async def scenario():
        clock = ManualClock(0)
        async with WindowActor(1000, on_expire=expired.append, clock=clock, tick_ms=1) as win:
            win.submit("old")
            await asyncio.sleep(0.02)
            before = await win.snapshot()
            clock.advance(1001)
            for _ in range(200):
                await asyncio.sleep(0.005)
                if expired:
                    break
            return before, await win.snapshot()

    before, after = asyncio.run(scenario())
    assert _payloads(before) == ["old"]
    assert after == []
    assert expired == ["old"]
