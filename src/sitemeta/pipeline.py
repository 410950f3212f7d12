"""Dependency wiring and batch resolution."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed

from requests import Session
from tqdm import tqdm

from .breaker import CircuitBreaker
from .cache import WebsiteCache
from .config import ResolverConfig
from .io_csv import write_rows
from .models import KeyValueStore, Provider, WebsiteData
from .providers import build_providers, make_session
from .request_queue import SerialRequestQueue
from .resolver import MetadataResolver, Observer
from .storage import JsonFileStore, MemoryStore
from .validation import display_domain, normalize_urls


def build_store(config: ResolverConfig) -> KeyValueStore:
    """File-backed store when a cache file is configured, in-memory otherwise."""
    if config.cache_file:
        return JsonFileStore(config.cache_file)
    return MemoryStore()


def build_providers_for(
    config: ResolverConfig,
    *,
    store: KeyValueStore,
    session: Session,
    logger: logging.Logger,
) -> dict[str, Provider]:
    breaker = CircuitBreaker(store, logger=logger, cooldown=config.breaker_cooldown)
    queue = SerialRequestQueue(
        breaker,
        logger=logger,
        min_interval=config.min_request_interval,
        max_pending=config.max_queue_size,
    )
    return build_providers(
        session=session,
        logger=logger,
        breaker=breaker,
        queue=queue,
        timeout=config.request_timeout,
    )


def build_resolver(
    config: ResolverConfig,
    *,
    logger: logging.Logger,
    store: KeyValueStore | None = None,
    session: Session | None = None,
    observer: Observer | None = None,
) -> MetadataResolver:
    """Build the concrete resolver: store, cache, breaker, queue and providers."""
    store = store if store is not None else build_store(config)
    session = session if session is not None else make_session(
        config.user_agent, pool_size=max(config.workers, 10)
    )
    cache = WebsiteCache(
        store,
        logger=logger,
        ttl=config.cache_ttl,
        sweep_max_checked=config.sweep_max_checked,
        sweep_max_deleted=config.sweep_max_deleted,
    )
    providers = build_providers_for(config, store=store, session=session, logger=logger)
    return MetadataResolver(
        providers=providers,
        cache=cache,
        logger=logger,
        domestic_domains=config.domestic_domains,
        observer=observer,
    )


def _to_row(url: str, data: WebsiteData) -> dict[str, str]:
    return {
        "url": url,
        "domain": display_domain(url),
        "title": data.title or "",
        "description": data.description or "",
        "icon": data.icon or "",
    }


def resolve_urls(
    urls: list[str],
    *,
    resolver: MetadataResolver,
    workers: int,
    show_progress: bool,
    logger: logging.Logger,
) -> list[dict[str, str]]:
    """Resolve many URLs concurrently and return rows in input order."""
    targets = normalize_urls(urls)
    skipped = len(urls) - len(targets)
    if skipped:
        logger.info("Skipping %d unsupported or duplicate URLs", skipped)

    results: dict[str, WebsiteData] = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(resolver.resolve, url): url for url in targets}
        iterator = as_completed(futures)
        if show_progress:
            iterator = tqdm(iterator, total=len(futures), desc="resolving links")
        for future in iterator:
            url = futures[future]
            try:
                results[url] = future.result()
            except Exception as exc:  # pragma: no cover - resolve does not raise
                logger.error("Worker failed for %s: %s", url, exc)
                results[url] = WebsiteData()
    return [_to_row(url, results[url]) for url in targets]


def probe_providers(url: str, providers: Mapping[str, Provider]) -> list[dict[str, str]]:
    """Call every provider directly for one URL, bypassing cache and fallbacks."""
    rows: list[dict[str, str]] = []
    for name, provider in providers.items():
        data = provider.fetch(url)
        rows.append(
            {
                "provider": name,
                "has_data": "yes" if not data.is_empty() else "no",
                "title": data.title or "",
                "description": data.description or "",
                "icon": data.icon or "",
            }
        )
    return rows


def run_pipeline(
    config: ResolverConfig, urls: list[str], output: str, *, logger: logging.Logger
) -> str:
    """Build concrete dependencies, resolve URLs, and write CSV output."""
    resolver = build_resolver(config, logger=logger)
    rows = resolve_urls(
        urls,
        resolver=resolver,
        workers=config.workers,
        show_progress=config.show_progress,
        logger=logger,
    )
    write_rows(output, rows)
    return output
