"""Timed circuit breaker for the rate-limited provider."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from threading import RLock

from .config import DEFAULT_BREAKER_COOLDOWN
from .errors import StorageError
from .models import KeyValueStore

BREAKER_KEY = "microlink_blocked_until"


def is_available_at(now_ms: int, blocked_until_ms: int) -> bool:
    """A provider is available once the clock reaches its blocked-until mark."""
    return now_ms >= blocked_until_ms


class CircuitBreaker:
    """Two-state breaker (available / blocked until T) persisted in a store.

    There is no reset: the breaker reopens on its own once the cooldown passes.
    The deadline is mirrored in memory so a failing store cannot reopen it early.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        logger: logging.Logger,
        cooldown: float = DEFAULT_BREAKER_COOLDOWN,
        clock: Callable[[], float] = time.time,
        key: str = BREAKER_KEY,
    ) -> None:
        self._store = store
        self._logger = logger
        self._cooldown_ms = int(cooldown * 1000)
        self._clock = clock
        self._key = key
        self._local_until = 0
        self._lock = RLock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def blocked_until(self) -> int:
        """Return the epoch-ms until which calls are skipped, or 0."""
        now = self._now_ms()
        with self._lock:
            blocked_until = max(self._read_stored(), self._local_until)
            if is_available_at(now, blocked_until):
                if blocked_until:
                    self._local_until = 0
                    self._forget()
                return 0
            return blocked_until

    def is_available(self) -> bool:
        return is_available_at(self._now_ms(), self.blocked_until())

    def block(self, reason: str) -> int:
        """Skip the provider for the cooldown period; return the new deadline."""
        blocked_until = self._now_ms() + self._cooldown_ms
        with self._lock:
            self._local_until = blocked_until
            try:
                self._store.set(self._key, json.dumps({"blockedUntil": blocked_until}))
            except StorageError as exc:
                self._logger.error("Failed to persist breaker state: %s", exc)
        self._logger.warning(
            "Circuit open for %.0f minutes, reason: %s", self._cooldown_ms / 60000, reason
        )
        return blocked_until

    def _read_stored(self) -> int:
        try:
            raw = self._store.get(self._key)
        except StorageError as exc:
            self._logger.error("Failed to read breaker state: %s", exc)
            return 0
        if raw is None:
            return 0
        try:
            return int(json.loads(raw)["blockedUntil"])
        except (ValueError, TypeError, KeyError) as exc:
            self._logger.error("Discarding unreadable breaker state %r: %s", raw, exc)
            self._forget()
            return 0

    def _forget(self) -> None:
        try:
            self._store.delete(self._key)
        except StorageError as exc:
            self._logger.error("Failed to clear breaker state: %s", exc)
