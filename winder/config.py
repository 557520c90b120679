"""
YAML configuration loader & validator for winder.

* merges in defaults for every section
* normalises ``window.length`` into a ``WindowLength``
* raises ``ConfigurationError`` early, with the offending key in the message
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from winder.errors import ConfigurationError
from winder.window.aggregates import AGGREGATES
from winder.window.model import WindowLength

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# defaults                                                                    #
# --------------------------------------------------------------------------- #
DEFAULTS: Dict[str, Any] = {
    "window": {
        "tick_ms": None,
    },
    "aggregate": {
        "kind": "none",
        "field": None,
    },
    "input": {
        "path": "-",
        "linger_s": 0,
    },
    "report": {
        "interval_s": 10,
    },
    "metrics": {
        "port": None,
    },
}


def _recursive_merge(base: dict, override: dict) -> dict:
    """Non-destructive deep merge (override wins)."""
    merged = base.copy()
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            merged[k] = _recursive_merge(base[k], v)
        else:
            merged[k] = v
    return merged


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# --------------------------------------------------------------------------- #
# public API                                                                  #
# --------------------------------------------------------------------------- #
def validate_config(raw: Dict[str, Any]) -> dict:
    """
    Apply defaults to an already-parsed mapping and validate it.

    :returns: config dict with ``window.length`` as a ``WindowLength``
    :raises ConfigurationError
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Config root must be a mapping")
    for section in DEFAULTS:
        if section in raw and not isinstance(raw[section], dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping")

    # ───── window section (required) ─────────────────────────────────────── #
    if "window" not in raw or "length" not in raw["window"]:
        raise ConfigurationError("Config must define window.length")

    cfg = _recursive_merge(DEFAULTS, raw)

    win = cfg["window"]
    win["length"] = WindowLength.parse(win["length"])
    tick = win["tick_ms"]
    if tick is not None and (not isinstance(tick, int) or isinstance(tick, bool) or tick <= 0):
        raise ConfigurationError("window.tick_ms must be a positive integer or null")

    # ───── aggregate section ─────────────────────────────────────────────── #
    agg = cfg["aggregate"]
    if agg["kind"] not in AGGREGATES:
        raise ConfigurationError(f"aggregate.kind must be one of {', '.join(AGGREGATES)}")
    if agg["field"] is not None and not isinstance(agg["field"], str):
        raise ConfigurationError("aggregate.field must be a string or null")

    # ───── input / report / metrics ──────────────────────────────────────── #
    if not isinstance(cfg["input"]["path"], str) or not cfg["input"]["path"]:
        raise ConfigurationError("input.path must be a non-empty string")
    if not _is_number(cfg["input"]["linger_s"]) or cfg["input"]["linger_s"] < 0:
        raise ConfigurationError("input.linger_s must be a non-negative number")
    if not _is_number(cfg["report"]["interval_s"]) or cfg["report"]["interval_s"] <= 0:
        raise ConfigurationError("report.interval_s must be a positive number")

    port = cfg["metrics"]["port"]
    if port is not None and (not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536):
        raise ConfigurationError("metrics.port must be an integer in 1..65535 or null")

    return cfg


def load_config(path: str | Path) -> dict:
    """
    Read YAML file, apply defaults, and validate structure.

    :param path: path to config YAML (str or Path)
    :returns: fully-populated config dict
    :raises FileNotFoundError, ConfigurationError
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file {path} is not valid YAML: {exc}") from exc

    cfg = validate_config(raw)
    logger.debug("Loaded config from %s", path)
    return cfg
