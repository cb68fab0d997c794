"""
Chrome native-messaging host: the bridge between the browser extension and
the recommendation orchestrator.

Wire format (both directions)::

    [4-byte uint32 length, native byte order][UTF-8 JSON object]

Requests::

    {"action": "analyzeProduct",       "requestId": "r1", "productData": {...}}
    {"action": "trackAvoidedPurchase", "requestId": "r2", "productData": {...}}
    {"action": "cancel",               "requestId": "r1"}

Responses::

    {"requestId": "r1", "action": "recommendation", "result": {...}}
    {"requestId": "r2", "success": true, "totalSavings": 129.99}
    {"requestId": "r1", "cancelled": true}
    {"requestId": "rX", "error": "Unknown action: foo"}

``analyzeProduct`` requests run concurrently on a bounded thread pool; each
gets its own ``CancellationToken``. A cancelled request's result is dropped.
EOF on stdin means the extension is gone: every outstanding token is
cancelled, the pool drains, and pending results are discarded.

stdout is the wire. Logging must go to stderr or a file.
"""

from __future__ import annotations

import json
import logging
import struct
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, BinaryIO, Optional
from uuid import uuid4

from stockswap.config import AppConfig
from stockswap.pipeline.cancellation import CancellationToken
from stockswap.pipeline.orchestrator import RecommendationOrchestrator
from stockswap.savings.tracker import SavingsTracker

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("=I")


class ProtocolError(ValueError):
    """A frame could not be decoded into a JSON object."""


# ── Framing ───────────────────────────────────────────────────────────────────

def read_message(stream: BinaryIO) -> Optional[dict[str, Any]]:
    """Read one framed message.

    Returns:
        The decoded JSON object, or ``None`` on EOF (including a frame cut
        short by EOF).

    Raises:
        ProtocolError: The frame body is not a UTF-8 JSON object.
    """
    header = stream.read(_HEADER.size)
    if len(header) < _HEADER.size:
        return None
    (length,) = _HEADER.unpack(header)
    body = stream.read(length)
    if len(body) < length:
        return None
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Undecodable message: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(message).__name__}")
    return message


def write_message(stream: BinaryIO, message: dict[str, Any]) -> None:
    """Write one framed message and flush."""
    body = json.dumps(message, default=str).encode("utf-8")
    stream.write(_HEADER.pack(len(body)))
    stream.write(body)
    stream.flush()


# ── Host ──────────────────────────────────────────────────────────────────────

class NativeMessagingHost:
    """Reads requests from ``stdin``, answers on ``stdout``.

    Args:
        config:       AppConfig for this process.
        orchestrator: Orchestrator override (tests inject one with a mock transport).
        tracker:      Savings tracker override.
        stdin:        Binary input stream (defaults to ``sys.stdin.buffer``).
        stdout:       Binary output stream (defaults to ``sys.stdout.buffer``).
    """

    def __init__(
        self,
        config: AppConfig,
        orchestrator: Optional[RecommendationOrchestrator] = None,
        tracker: Optional[SavingsTracker] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator or RecommendationOrchestrator(config)
        self.tracker = tracker or SavingsTracker(config)
        self.stdin = stdin or sys.stdin.buffer
        self.stdout = stdout or sys.stdout.buffer

        self._executor = ThreadPoolExecutor(
            max_workers=config.native_host.max_workers,
            thread_name_prefix="stockswap-request",
        )
        self._write_lock = threading.Lock()
        self._tokens: dict[str, CancellationToken] = {}
        self._tokens_lock = threading.Lock()
        self._closed = threading.Event()
        self._pending: set[Future] = set()

    def serve(self) -> int:
        """Process messages until EOF; return how many were read."""
        logger.info("Native host started (max_workers=%d).", self.config.native_host.max_workers)
        handled = 0
        try:
            while True:
                try:
                    message = read_message(self.stdin)
                except ProtocolError as exc:
                    logger.error("Dropping malformed message: %s", exc)
                    self._send({"requestId": None, "error": str(exc)})
                    continue
                if message is None:
                    break
                handled += 1
                self.dispatch(message)
        finally:
            self.shutdown()
        logger.info("Native host stopped after %d message(s).", handled)
        return handled

    def dispatch(self, message: dict[str, Any]) -> None:
        """Route one decoded message by its ``action``."""
        action = message.get("action")
        request_id = message.get("requestId")

        if action == "analyzeProduct":
            self._submit_analysis(request_id, message.get("productData"))
        elif action == "trackAvoidedPurchase":
            self._track(request_id, message.get("productData"))
        elif action == "cancel":
            self._send({"requestId": request_id, "cancelled": self.cancel(request_id)})
        else:
            logger.warning("Unknown action %r (request %s)", action, request_id)
            self._send({"requestId": request_id, "error": f"Unknown action: {action}"})

    def cancel(self, request_id: Optional[str]) -> bool:
        """Cancel an in-flight analysis; False if it is not (or no longer) running."""
        with self._tokens_lock:
            token = self._tokens.get(request_id) if request_id else None
        if token is None:
            return False
        token.cancel("cancelled by extension")
        logger.info("Request %s cancelled.", request_id)
        return True

    def shutdown(self) -> None:
        """Cancel everything outstanding and wait for workers to finish."""
        self._closed.set()
        with self._tokens_lock:
            outstanding = list(self._tokens.values())
        for token in outstanding:
            token.cancel("extension disconnected")
        if outstanding:
            logger.info("Discarding %d outstanding request(s).", len(outstanding))
        self._executor.shutdown(wait=True)

    def join(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted analysis has finished (results are sent)."""
        with self._tokens_lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    # ── Actions ───────────────────────────────────────────────────────────────

    def _submit_analysis(self, request_id: Optional[str], product_data: Any) -> None:
        key = request_id or f"anon-{uuid4().hex[:8]}"
        token = CancellationToken()
        with self._tokens_lock:
            self._tokens[key] = token
        future = self._executor.submit(self._analyze, key, request_id, product_data, token)
        with self._tokens_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _analyze(
        self,
        key: str,
        request_id: Optional[str],
        product_data: Any,
        token: CancellationToken,
    ) -> None:
        try:
            recommendation = self.orchestrator.get_recommendation(product_data, cancel_token=token)
        finally:
            with self._tokens_lock:
                self._tokens.pop(key, None)

        if token.cancelled or self._closed.is_set():
            logger.info("Result for request %s discarded (%s).", request_id, token.reason or "closed")
            return
        self._send({
            "requestId": request_id,
            "action": "recommendation",
            "result": recommendation.model_dump(mode="json"),
        })

    def _track(self, request_id: Optional[str], product_data: Any) -> None:
        try:
            summary = self.tracker.track(product_data if isinstance(product_data, dict) else {})
        except ValueError as exc:
            self._send({"requestId": request_id, "success": False, "error": str(exc)})
            return
        self._send({
            "requestId": request_id,
            "success": True,
            "totalSavings": summary.total_savings,
        })

    def _forget(self, future: Future) -> None:
        with self._tokens_lock:
            self._pending.discard(future)

    def _send(self, message: dict[str, Any]) -> None:
        with self._write_lock:
            try:
                write_message(self.stdout, message)
            except (BrokenPipeError, ValueError) as exc:
                # ValueError: write to a closed stream.
                logger.warning("Could not write to extension: %s", exc)
                self._closed.set()
