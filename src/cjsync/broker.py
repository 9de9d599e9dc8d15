"""
Background request broker for codec and crypto work.

PBKDF2 at a million iterations takes long enough that callers hand the
work to a background pool and wait on a Future:

    broker = RequestBroker()
    future = broker.submit({"type": "encode", "settings": {...}, ...})
    result = future.result()

Messages are wire-shaped dicts:

    request   {"type": "encode" | "decode" | "generateQR", "id": ..., ...}
    response  {"type": <same>, "id": ..., "result": {...}}
    error     {"type": "error", "id": ..., "error": <ErrorKind>, "message": str}

Every request gets a correlation id from a counter and a deadline
timer. A request that misses its deadline is failed with BrokerTimeout
and purged from the in-flight map; a response that arrives after that
is logged and discarded. There is no cancellation.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from . import codec
from .errors import BrokerTimeout, ErrorKind, SyncError, error_for_kind

logger = logging.getLogger("cjsync.broker")

DEFAULT_TIMEOUT_SECONDS = 10.0

Handler = Callable[[dict[str, Any]], Any]


def _handle_encode(request: dict[str, Any]) -> dict[str, Any]:
    result = codec.encode(
        request.get("settings") or {},
        request.get("iconConfig") or {},
        request.get("mode", "full"),
        request.get("password"),
        wallpaper=request.get("wallpaper"),
        limit=request.get("limit", codec.MAX_TRANSPORT_CHARS),
        iterations=request.get("iterations"),
    )
    return result.model_dump()


def _handle_decode(request: dict[str, Any]) -> dict[str, Any]:
    result = codec.decode(
        request.get("payload"), request.get("password"), iterations=request.get("iterations")
    )
    return result.model_dump(mode="json")


DEFAULT_HANDLERS: dict[str, Handler] = {
    "encode": _handle_encode,
    "decode": _handle_decode,
}


class RequestBroker:
    """Correlated request/response over a thread pool.

    Args:
        handlers: Extra or replacement handlers by request type.
            "generateQR" is only served when registered here.
        timeout: Seconds before a pending request fails.
        max_workers: Background pool size.
    """

    def __init__(
        self,
        handlers: Optional[dict[str, Handler]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_workers: int = 1,
    ) -> None:
        self.handlers: dict[str, Handler] = {**DEFAULT_HANDLERS, **(handlers or {})}
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cjsync-broker")
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._pending: dict[str, tuple[Future, threading.Timer]] = {}
        self._closed = False

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def register(self, request_type: str, handler: Handler) -> None:
        self.handlers[request_type] = handler

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------

    def submit(self, request: dict[str, Any]) -> Future:
        """Send a request to the background pool.

        Args:
            request: Wire-shaped request; "id" is assigned here.

        Returns:
            Future: Resolves to the response's "result", or fails with
            the SyncError named in an error response.
        """
        if self._closed:
            raise RuntimeError("Broker is closed")

        request_id = f"req_{next(self._ids)}"
        message = {**request, "id": request_id}
        future: Future = Future()

        timer = threading.Timer(self.timeout, self._expire, args=(request_id,))
        timer.daemon = True
        with self._lock:
            self._pending[request_id] = (future, timer)
        timer.start()

        worker = self._executor.submit(self._dispatch, message)
        worker.add_done_callback(lambda f: self._on_response(f.result()))
        logger.debug("Submitted %s (%s)", request_id, message.get("type"))
        return future

    def request(self, request_type: str, **fields: Any) -> Any:
        """Submit and wait for the result."""
        return self.submit({"type": request_type, **fields}).result()

    def encode(self, settings, icon_config, mode="full", password=None, **extra) -> dict[str, Any]:
        return self.request(
            "encode", settings=settings, iconConfig=icon_config, mode=mode, password=password, **extra
        )

    def decode(self, payload: str, password: Optional[str] = None, **extra: Any) -> dict[str, Any]:
        return self.request("decode", payload=payload, password=password, **extra)

    def generate_qr(self, text: str, **options: Any) -> Any:
        return self.request("generateQR", text=text, **options)

    def close(self) -> None:
        """Stop the pool and fail anything still pending."""
        self._closed = True
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for future, timer in pending:
            timer.cancel()
            future.cancel()
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Background side
    # ------------------------------------------------------------------

    def _dispatch(self, message: dict[str, Any]) -> dict[str, Any]:
        request_id = message["id"]
        request_type = message.get("type")
        handler = self.handlers.get(request_type)
        if handler is None:
            return {
                "type": "error",
                "id": request_id,
                "error": ErrorKind.MALFORMED_INPUT.value,
                "message": f"Unknown request type: {request_type!r}",
            }
        try:
            return {"type": request_type, "id": request_id, "result": handler(message)}
        except SyncError as exc:
            return {"type": "error", "id": request_id, "error": exc.kind.value, "message": str(exc)}
        except Exception as exc:
            logger.error("Handler for %s failed: %s", request_type, exc)
            return {
                "type": "error",
                "id": request_id,
                "error": ErrorKind.MALFORMED_INPUT.value,
                "message": str(exc) or "Processing failed",
            }

    def _on_response(self, response: dict[str, Any]) -> None:
        request_id = response.get("id")
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.warning("Discarding late response for %s", request_id)
            return

        future, timer = entry
        timer.cancel()
        if response.get("type") == "error":
            future.set_exception(error_for_kind(response.get("error", ""), response.get("message", "")))
        else:
            future.set_result(response.get("result"))

    def _expire(self, request_id: str) -> None:
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        future, _ = entry
        logger.warning("Request %s timed out after %.1fs", request_id, self.timeout)
        future.set_exception(BrokerTimeout(f"Request {request_id} timed out"))

    def __enter__(self) -> "RequestBroker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
