from prometheus_client import Counter, Gauge

ENTRIES_SUBMITTED = Counter(
    "winder_entries_submitted_total", "entries appended to the window"
)
ENTRIES_EXPIRED = Counter(
    "winder_entries_expired_total", "entries evicted by expiration sweeps"
)
SWEEPS = Counter("winder_sweeps_total", "expiration sweeps run")
CALLBACK_FAILURES = Counter(
    "winder_callback_failures_total", "user callbacks that raised", ["callback"]
)
WINDOW_ENTRIES = Gauge("winder_window_entries", "entries currently in the window")
