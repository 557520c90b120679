"""
winder main entry point.

Reads items (newline-delimited JSON) from stdin or a file into a sliding
time window, logs the window's running aggregate periodically and, when
configured, exposes Prometheus metrics.

This module is also the window's supervisor: a failing update/expire
callback stops the window, is reported here and ends the process with
exit status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from prometheus_client import start_http_server

from winder.config import load_config
from winder.errors import CallbackError, ClosedError, ConfigurationError
from winder.reporting.reporter import StateReporter
from winder.sources.lines import LineSource
from winder.window import aggregates
from winder.window.actor import WindowActor

logger = logging.getLogger("winder.main")


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def build_window(cfg: dict) -> WindowActor:
    """Stateless window for ``aggregate.kind: none``, accumulating otherwise."""
    win_cfg = cfg["window"]
    agg_cfg = cfg["aggregate"]

    agg = aggregates.build(agg_cfg["kind"], agg_cfg["field"])
    if agg is None:
        return WindowActor(win_cfg["length"], tick_ms=win_cfg["tick_ms"])

    initial, on_update, on_expire = agg
    return WindowActor.with_state(
        win_cfg["length"], initial, on_update, on_expire, tick_ms=win_cfg["tick_ms"]
    )


# --------------------------------------------------------------------------- #
# service runner                                                              #
# --------------------------------------------------------------------------- #
async def run_service(args) -> int:
    cfg = load_config(args.config)
    window = build_window(cfg)

    port = cfg["metrics"]["port"]
    if port:
        start_http_server(port)
        logger.info("Prometheus metrics on :%d", port)

    await window.start()

    source = LineSource(cfg["input"]["path"], window.submit)
    reporter = StateReporter(window, cfg["aggregate"]["kind"], cfg["report"]["interval_s"])

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown():
        logger.info("Shutdown signal received, stopping ...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _shutdown)

    async def _feed():
        try:
            await source.start()
            linger = cfg["input"]["linger_s"]
            if linger:
                logger.info("Input exhausted, keeping the window open for %ss", linger)
                await asyncio.sleep(linger)
        finally:
            stop_event.set()

    feed_task = asyncio.create_task(_feed(), name="winder.source")
    report_task = asyncio.create_task(reporter.run(), name="winder.reporter")
    logger.info("winder started (window %d ms).", window.length_ms)

    # wait for a signal, end of input, or a window fault
    stopper = asyncio.create_task(stop_event.wait())
    joiner = asyncio.create_task(window.join())
    await asyncio.wait({stopper, joiner}, return_when=asyncio.FIRST_COMPLETED)

    await source.stop()
    feed_task.cancel()
    reporter.stop()
    feed_result, _ = await asyncio.gather(feed_task, report_task, return_exceptions=True)
    stopper.cancel()

    code = 0
    # ClosedError here only means the window died first; reported below
    if isinstance(feed_result, Exception) and not isinstance(feed_result, ClosedError):
        logger.error("Input source failed: %r", feed_result)
        code = 1

    await window.stop()
    try:
        await joiner
    except CallbackError as exc:
        logger.error("Window stopped by a failing %s callback: %r", exc.callback, exc.__cause__)
        return 1
    logger.info("winder stopped.")
    return code


# --------------------------------------------------------------------------- #
# CLI                                                                         #
# --------------------------------------------------------------------------- #
def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Sliding time window over a stream of items")
    p.add_argument(
        "-c",
        "--config",
        default="config/window.yaml",
        help="Path to window configuration YAML",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console log level (default INFO)",
    )
    return p.parse_args(argv)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        code = asyncio.run(run_service(args))
    except (FileNotFoundError, ConfigurationError) as exc:
        logger.error("%s", exc)
        code = 2
    except KeyboardInterrupt:
        # already handled by signal handler on Unix; this is for Windows
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
