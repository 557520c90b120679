"""
Newline-delimited input for a window.

Every non-blank line becomes one payload: JSON when it parses, the raw
(stripped) string otherwise.  ``path="-"`` reads stdin.

Blocking reads happen in a daemon thread that hands lines to the event loop
through a queue.  A read that never returns (an idle ``tail -f`` pipe) can't
hold up shutdown: nothing ever joins that thread.
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
import threading
from typing import Any, Callable, Optional, TextIO

from winder.sources.base import BaseSource

logger = logging.getLogger(__name__)

__all__ = ["LineSource", "parse_line"]

# lines read ahead of the event loop
MAX_PENDING = 1024

_STOPPED = object()


def parse_line(line: str) -> Optional[Any]:
    """Payload for *line*; ``None`` for blank lines."""
    text = line.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        logger.debug("Non-JSON line submitted as text: %r", text)
        return text


class LineSource(BaseSource):
    def __init__(self, path: str, submit: Callable[[Any], None], max_pending: int = MAX_PENDING):
        self.path = path
        self.submit = submit
        self.count = 0
        self._stop_event = asyncio.Event()
        self._closing = threading.Event()
        self._room = threading.Semaphore(max_pending)
        self._lines: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def start(self):
        if self._stop_event.is_set():
            return
        fh = sys.stdin if self.path == "-" else open(self.path, "r", encoding="utf-8")
        logger.info("Reading items from %s", "stdin" if self.path == "-" else self.path)

        self._loop = asyncio.get_running_loop()
        self._lines = asyncio.Queue()
        threading.Thread(
            target=self._read, args=(fh,), name="winder.lines", daemon=True
        ).start()

        while not self._stop_event.is_set():
            item = await self._lines.get()
            if item is _STOPPED:
                break
            self._room.release()
            if isinstance(item, Exception):
                raise item
            if not item:  # EOF
                break
            payload = parse_line(item)
            if payload is None:
                continue
            self.submit(payload)
            self.count += 1
        logger.info("Input finished after %d item(s)", self.count)

    async def stop(self):
        self._stop_event.set()
        self._closing.set()
        # wake a reader waiting for room, and the consumer waiting for a line
        self._room.release()
        if self._lines is not None:
            self._lines.put_nowait(_STOPPED)

    # ------------------------------------------------------------------ #
    # reader thread                                                       #
    # ------------------------------------------------------------------ #
    def _read(self, fh: TextIO) -> None:
        try:
            while True:
                self._room.acquire()
                if self._closing.is_set():
                    return
                try:
                    line = fh.readline()
                except Exception as exc:
                    self._post(exc)
                    return
                if not self._post(line) or not line:
                    return
        finally:
            if fh is not sys.stdin:
                fh.close()

    def _post(self, item: Any) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._lines.put_nowait, item)
        except RuntimeError:
            # event loop already closed
            return False
        return True
