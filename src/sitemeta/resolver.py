"""Resolution of display metadata through an ordered chain of providers."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Future
from threading import Lock, Thread

from .cache import WebsiteCache, is_valid_website_data
from .config import DEFAULT_DOMESTIC_DOMAINS
from .models import Provider, ProviderResult, WebsiteData
from .validation import display_domain, hostname_from_url

# Domestic hosts: providers that handle mainland sites well go first.
DOMESTIC_ORDER = ("ahfi", "jxcxin", "xxapi", "microlink", "uapis")
INTERNATIONAL_ORDER = ("jxcxin", "ahfi", "microlink", "xxapi", "uapis")

PLACEHOLDER_TEMPLATE = "visit {domain} website"
_PLACEHOLDER_PATTERN = re.compile(r"^visit\s+\S+\s+website$")

Observer = Callable[[str, ProviderResult], None]
Spawn = Callable[[Callable[[], object]], None]


def is_domestic_site(url: str, domains: Iterable[str] = DEFAULT_DOMESTIC_DOMAINS) -> bool:
    """Return True when the URL's host ends with one of the domestic suffixes."""
    host = hostname_from_url(url)
    if not host:
        return False
    return any(host.endswith(suffix) for suffix in domains)


def provider_order(
    url: str, domains: Iterable[str] = DEFAULT_DOMESTIC_DOMAINS
) -> tuple[str, ...]:
    return DOMESTIC_ORDER if is_domestic_site(url, domains) else INTERNATIONAL_ORDER


def placeholder_for(url: str) -> WebsiteData:
    return WebsiteData(description=PLACEHOLDER_TEMPLATE.format(domain=display_domain(url)))


def is_placeholder(data: WebsiteData) -> bool:
    return bool(data.description) and not data.title and bool(
        _PLACEHOLDER_PATTERN.match(data.description.strip())
    )


def best_partial_title(partials: Iterable[tuple[str, WebsiteData]]) -> tuple[str, str] | None:
    """Pick the longest non-empty title among partial results as (provider, title)."""
    best: tuple[str, str] | None = None
    for provider_name, data in partials:
        title = (data.title or "").strip()
        if not title:
            continue
        if best is None or len(title) > len(best[1]):
            best = (provider_name, title)
    return best


def _spawn_daemon(target: Callable[[], object]) -> None:
    Thread(target=target, name="sitemeta-cache-sweep", daemon=True).start()


class MetadataResolver:
    """Resolve ``WebsiteData`` for a URL; ``resolve`` always returns a value.

    Lookup order: cache, then providers one at a time in an order chosen by
    the host's locale. The first result with a trustworthy description wins.
    Otherwise the longest partial title doubles as the description, and when
    nothing at all came back a ``visit <domain> website`` placeholder is
    synthesized. Every outcome is cached.
    """

    def __init__(
        self,
        *,
        providers: Mapping[str, Provider],
        cache: WebsiteCache,
        logger: logging.Logger,
        domestic_domains: Iterable[str] = DEFAULT_DOMESTIC_DOMAINS,
        observer: Observer | None = None,
        clock: Callable[[], float] = time.time,
        spawn: Spawn = _spawn_daemon,
    ) -> None:
        self._providers = dict(providers)
        self._cache = cache
        self._logger = logger
        self._domestic_domains = tuple(domestic_domains)
        self._observer = observer
        self._clock = clock
        self._spawn = spawn
        self._lock = Lock()
        self._sweep_scheduled = False
        self._synthesized: set[str] = set()
        self._attempts: dict[str, list[ProviderResult]] = {}
        self._inflight: dict[str, Future[WebsiteData]] = {}

    def attempts(self, url: str) -> list[ProviderResult]:
        """Provider attempts recorded during the last network resolution of ``url``."""
        with self._lock:
            return list(self._attempts.get(url, []))

    def provider_order(self, url: str) -> tuple[str, ...]:
        return provider_order(url, self._domestic_domains)

    def resolve(self, url: str) -> WebsiteData:
        self._schedule_sweep()

        cached = self._cached(url)
        if cached is not None:
            return cached

        # Concurrent callers for the same URL share one provider chain.
        with self._lock:
            pending = self._inflight.get(url)
            if pending is None:
                owner = True
                pending = Future()
                self._inflight[url] = pending
            else:
                owner = False
        if not owner:
            return pending.result()

        try:
            result = self._cached(url)
            if result is None:
                result = self._resolve_uncached(url)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Resolution of %s failed unexpectedly: %s", url, exc)
            result = WebsiteData()
        finally:
            with self._lock:
                self._inflight.pop(url, None)
        pending.set_result(result)
        return result

    def _schedule_sweep(self) -> None:
        with self._lock:
            if self._sweep_scheduled:
                return
            self._sweep_scheduled = True
        self._spawn(self._cache.clear_expired)

    def _cached(self, url: str) -> WebsiteData | None:
        cached = self._cache.get(url)
        if cached is None:
            return None
        if is_placeholder(cached):
            with self._lock:
                synthesized_here = url in self._synthesized
            if not synthesized_here:
                self._logger.info("Cached placeholder for %s is stale, resolving again", url)
                self._cache.delete(url)
                return None
        self._logger.debug("Cache hit for %s", url)
        return cached

    def _resolve_uncached(self, url: str) -> WebsiteData:
        domestic = is_domestic_site(url, self._domestic_domains)
        order = DOMESTIC_ORDER if domestic else INTERNATIONAL_ORDER
        self._logger.debug(
            "Cache miss for %s (%s host), trying %s",
            url,
            "domestic" if domestic else "international",
            " -> ".join(order),
        )

        attempts: list[ProviderResult] = []
        partials: list[tuple[str, WebsiteData]] = []
        try:
            for name in order:
                provider = self._providers.get(name)
                if provider is None:
                    continue
                data = self._attempt(url, provider, attempts)
                if data is None or data.is_empty():
                    continue
                if is_valid_website_data(data) and data.description:
                    self._logger.info("Resolved %s via %s", url, name)
                    self._cache.set(url, data)
                    return data
                self._logger.debug("Keeping partial result from %s for %s: %s", name, url, data)
                partials.append((name, data))
        finally:
            with self._lock:
                self._attempts[url] = attempts

        self._logger.error(
            "All providers failed for %s: %s",
            url,
            ", ".join(
                f"{item.provider}={'data' if item.has_data else item.error or 'empty'}"
                for item in attempts
            ),
        )

        best = best_partial_title(partials)
        if best is not None:
            provider_name, title = best
            self._logger.info("Using %s title as description for %s", provider_name, url)
            fallback = WebsiteData(title=title, description=title)
            self._cache.set(url, fallback)
            return fallback

        placeholder = placeholder_for(url)
        self._logger.info("Synthesized placeholder for %s", url)
        with self._lock:
            self._synthesized.add(url)
        self._cache.set_fallback(url, placeholder)
        return placeholder

    def _attempt(
        self, url: str, provider: Provider, attempts: list[ProviderResult]
    ) -> WebsiteData | None:
        is_available = getattr(provider, "is_available", None)
        if callable(is_available) and not is_available():
            self._logger.warning("Skipping %s for %s: circuit open", provider.name, url)
            self._record(url, attempts, provider.name, success=False, error="circuit open")
            return None

        try:
            data = provider.fetch(url)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Provider %s raised for %s: %s", provider.name, url, exc)
            self._record(
                url, attempts, provider.name, success=False, error=str(exc) or type(exc).__name__
            )
            return None

        self._record(url, attempts, provider.name, success=True, has_data=not data.is_empty())
        return data

    def _record(
        self,
        url: str,
        attempts: list[ProviderResult],
        provider_name: str,
        *,
        success: bool,
        has_data: bool = False,
        error: str | None = None,
    ) -> None:
        result = ProviderResult(
            provider=provider_name,
            success=success,
            has_data=has_data,
            timestamp=self._clock(),
            error=error,
        )
        attempts.append(result)
        self._logger.debug(
            "%s -> %s: success=%s has_data=%s error=%s",
            url,
            provider_name,
            success,
            has_data,
            error,
        )
        if self._observer is None:
            return
        try:
            self._observer(url, result)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Attempt observer failed for %s: %s", url, exc)
