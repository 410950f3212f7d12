"""Persistent TTL cache of resolved website metadata."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from threading import RLock

from .config import DEFAULT_CACHE_TTL, DEFAULT_SWEEP_MAX_CHECKED, DEFAULT_SWEEP_MAX_DELETED
from .errors import StorageError
from .models import KeyValueStore, WebsiteData

CACHE_PREFIX = "website_data_"

# Titles of challenge and error pages that providers return instead of the site's own.
ERROR_PAGE_TITLES = (
    "vercel security checkpoint",
    "security checkpoint",
    "just a moment...",
    "checking your browser",
    "access denied",
    "403 forbidden",
    "404 not found",
    "error",
)

# A description longer than this outweighs an error-page title.
MIN_TRUSTED_DESCRIPTION = 10


def is_error_title(title: str | None) -> bool:
    """Return True when a title looks like a challenge or error page."""
    if not title:
        return False
    lowered = title.lower()
    return any(signature in lowered for signature in ERROR_PAGE_TITLES)


def is_valid_website_data(data: WebsiteData) -> bool:
    """Return True when metadata is worth showing and caching."""
    if not data.title and not data.description:
        return False
    if is_error_title(data.title):
        description = (data.description or "").strip()
        return len(description) > MIN_TRUSTED_DESCRIPTION
    return True


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


class WebsiteCache:
    """URL -> WebsiteData cache over a KeyValueStore.

    Entries are JSON objects holding the metadata fields plus ``timestamp`` and
    ``ttl`` in milliseconds. Eviction is lazy: stale or invalid entries are
    dropped when read, and ``clear_expired`` performs a bounded sweep.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        logger: logging.Logger,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        sweep_max_checked: int = DEFAULT_SWEEP_MAX_CHECKED,
        sweep_max_deleted: int = DEFAULT_SWEEP_MAX_DELETED,
    ) -> None:
        self._store = store
        self._logger = logger
        self._ttl = ttl
        self._clock = clock
        self._sweep_max_checked = sweep_max_checked
        self._sweep_max_deleted = sweep_max_deleted
        self._lock = RLock()

    @staticmethod
    def key_for(url: str) -> str:
        return f"{CACHE_PREFIX}{url}"

    def get(self, url: str) -> WebsiteData | None:
        """Return cached metadata, or None on miss, expiry, or an invalid entry."""
        key = self.key_for(url)
        with self._lock:
            raw = self._store.get(key)
            if raw is None:
                return None
            try:
                data, timestamp, ttl_ms = self._decode(raw)
            except ValueError as exc:
                self._logger.warning("Dropping unreadable cache entry for %s: %s", url, exc)
                self._safe_delete(key)
                return None
            if _now_ms(self._clock) - timestamp > ttl_ms:
                self._logger.debug("Cache entry for %s expired", url)
                self._safe_delete(key)
                return None
            if not is_valid_website_data(data):
                self._logger.warning("Dropping invalid cache entry for %s: %s", url, data)
                self._safe_delete(key)
                return None
            return data

    def set(self, url: str, data: WebsiteData, ttl: float | None = None) -> bool:
        """Cache metadata that passes the validity predicate; return True if written."""
        if not is_valid_website_data(data):
            self._logger.warning("Not caching invalid metadata for %s: %s", url, data)
            return False
        return self._write(url, data, ttl)

    def set_fallback(self, url: str, data: WebsiteData, ttl: float | None = None) -> bool:
        """Cache a synthesized fallback record regardless of validity."""
        return self._write(url, data, ttl)

    def delete(self, url: str) -> None:
        with self._lock:
            self._safe_delete(self.key_for(url))

    def clear(self) -> int:
        """Remove every cache entry and return how many were removed."""
        removed = 0
        with self._lock:
            for key in list(self._store.keys()):
                if key.startswith(CACHE_PREFIX) and self._safe_delete(key):
                    removed += 1
        self._logger.info("Cleared %d cache entries", removed)
        return removed

    def clear_expired(self) -> int:
        """Delete expired or corrupt entries within the sweep limits.

        Inspects at most ``sweep_max_checked`` entries and deletes at most
        ``sweep_max_deleted``; anything beyond is left for a later sweep.
        """
        now = _now_ms(self._clock)
        stale: list[str] = []
        checked = 0
        with self._lock:
            for key in list(self._store.keys()):
                if checked >= self._sweep_max_checked:
                    break
                if not key.startswith(CACHE_PREFIX):
                    continue
                checked += 1
                raw = self._store.get(key)
                if raw is None:
                    continue
                try:
                    _data, timestamp, ttl_ms = self._decode(raw)
                except ValueError:
                    stale.append(key)
                    continue
                if now - timestamp > ttl_ms:
                    stale.append(key)

            to_delete = stale[: self._sweep_max_deleted]
            deleted = sum(1 for key in to_delete if self._safe_delete(key))

        if len(stale) > len(to_delete):
            self._logger.warning(
                "%d expired cache entries left for a later sweep", len(stale) - len(to_delete)
            )
        self._logger.debug("Cache sweep checked %d entries, deleted %d", checked, deleted)
        return deleted

    def _write(self, url: str, data: WebsiteData, ttl: float | None) -> bool:
        ttl_seconds = self._ttl if ttl is None else ttl
        record: dict[str, object] = dict(data.to_dict())
        record["timestamp"] = _now_ms(self._clock)
        record["ttl"] = int(ttl_seconds * 1000)
        try:
            with self._lock:
                self._store.set(self.key_for(url), json.dumps(record, ensure_ascii=False))
        except StorageError as exc:
            self._logger.error("Failed to cache metadata for %s: %s", url, exc)
            self.clear_expired()
            return False
        self._logger.debug(
            "Cached metadata for %s (title=%r, has_description=%s)",
            url,
            data.title,
            bool(data.description),
        )
        return True

    def _safe_delete(self, key: str) -> bool:
        try:
            self._store.delete(key)
        except StorageError as exc:
            self._logger.error("Failed to delete cache key %s: %s", key, exc)
            return False
        return True

    @staticmethod
    def _decode(raw: str) -> tuple[WebsiteData, int, int]:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("cache entry is not an object")
        timestamp = payload.get("timestamp")
        ttl_ms = payload.get("ttl")
        if not isinstance(timestamp, (int, float)) or not isinstance(ttl_ms, (int, float)):
            raise ValueError("cache entry has no timestamp/ttl")
        return WebsiteData.from_dict(payload), int(timestamp), int(ttl_ms)
