"""
Exception hierarchy for winder.

* ``ConfigurationError`` – bad window length / tick / YAML content
* ``CallbackError``      – a user update/expire callback raised
* ``ClosedError``        – operation requested after the window stopped
"""

from __future__ import annotations


class WinderError(Exception):
    """Root of every error raised by winder itself."""


class ConfigurationError(WinderError, ValueError):
    pass


class CallbackError(WinderError):
    """
    Raised when a user callback fails.  The original exception is chained
    as ``__cause__``; ``callback`` names which one ("update" / "expire").
    """

    def __init__(self, callback: str, payload: object):
        super().__init__(f"{callback} callback failed for payload {payload!r}")
        self.callback = callback
        self.payload = payload


class ClosedError(WinderError):
    pass
