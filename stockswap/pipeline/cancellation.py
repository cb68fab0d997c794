"""
Cooperative cancellation for one recommendation request.

The invoking surface (the native-messaging host, a CLI Ctrl-C) holds the
token and calls ``cancel()`` when its consumer goes away. Network calls
already in flight are allowed to finish; every retry loop checks the token
before re-entering, and the orchestrator discards the result of a cancelled
request.

Tokens are thread-safe: the host cancels from its reader thread while the
request runs on a worker thread under its own event loop.
"""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """One-shot, thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason})" if self.cancelled else "active"
        return f"CancellationToken({state})"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    """True if ``token`` exists and has been cancelled."""
    return token is not None and token.cancelled
