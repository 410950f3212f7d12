"""Serialized, paced request queue for the rate-limited provider."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future
from threading import Lock, Thread

from .breaker import CircuitBreaker
from .config import DEFAULT_MAX_QUEUE_SIZE, DEFAULT_MIN_REQUEST_INTERVAL
from .models import WebsiteData

SleepFn = Callable[[float], None]
Call = Callable[[], WebsiteData]


class SerialRequestQueue:
    """FIFO that runs one call at a time with a pause after each call.

    Callers block in ``submit`` until their call has run. A worker thread is
    started when work arrives and exits once the queue is drained. When the
    breaker opens, every queued call resolves to an empty result.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        *,
        logger: logging.Logger,
        min_interval: float = DEFAULT_MIN_REQUEST_INTERVAL,
        max_pending: int = DEFAULT_MAX_QUEUE_SIZE,
        sleep_fn: SleepFn = time.sleep,
    ) -> None:
        self._breaker = breaker
        self._logger = logger
        self._min_interval = min_interval
        self._max_pending = max_pending
        self._sleep_fn = sleep_fn
        self._pending: deque[tuple[Call, Future[WebsiteData]]] = deque()
        self._running = False
        self._lock = Lock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def submit(self, call: Call) -> WebsiteData:
        """Queue a call and wait for its result."""
        if not self._breaker.is_available():
            self._logger.debug("Circuit open, skipping queued request")
            return WebsiteData()

        future: Future[WebsiteData] = Future()
        with self._lock:
            if len(self._pending) >= self._max_pending:
                self._logger.warning(
                    "Request queue is full (%d pending), skipping request", len(self._pending)
                )
                return WebsiteData()
            self._pending.append((call, future))
            if not self._running:
                self._running = True
                Thread(target=self._drain, name="sitemeta-request-queue", daemon=True).start()
        return future.result()

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    self._running = False
                    return
                if not self._breaker.is_available():
                    self._abandon_pending()
                    return
                call, future = self._pending.popleft()

            try:
                result = call()
            except Exception as exc:  # noqa: BLE001
                self._logger.error("Queued request failed: %s", exc)
                result = WebsiteData()
            future.set_result(result)

            if not self._breaker.is_available():
                with self._lock:
                    self._abandon_pending()
                return
            self._sleep_fn(self._min_interval)

    def _abandon_pending(self) -> None:
        # Caller holds the lock.
        if self._pending:
            self._logger.warning("Circuit open, dropping %d queued requests", len(self._pending))
        while self._pending:
            _call, future = self._pending.popleft()
            future.set_result(WebsiteData())
        self._running = False
