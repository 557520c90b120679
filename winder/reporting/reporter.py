from __future__ import annotations

import asyncio
import logging
from typing import Optional

from winder.errors import ClosedError
from winder.window import aggregates
from winder.window.actor import WindowActor

logger = logging.getLogger(__name__)


class StateReporter:
    """Logs window size and the running aggregate every *interval_s* seconds."""

    def __init__(self, window: WindowActor, aggregate: str = "none", interval_s: float = 10):
        self.window = window
        self.aggregate = aggregate
        self.interval_s = interval_s
        self._stop_event = asyncio.Event()

    async def report_once(self) -> Optional[str]:
        """Log (and return) one report line; ``None`` once the window is gone."""
        try:
            entries = await self.window.snapshot()
            state = await self.window.external_state()
        except ClosedError:
            return None

        line = f"window: {len(entries)} entries"
        if entries:
            oldest = entries[0][0].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
            line += f", oldest {oldest}"
        detail = aggregates.describe(self.aggregate, state)
        if detail:
            line += f", {detail}"
        logger.info("%s", line)
        return line

    async def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass
            if await self.report_once() is None:
                return

    def stop(self) -> None:
        self._stop_event.set()
