"""CLI entrypoint for sitemeta."""

from __future__ import annotations

import argparse
import json
import os
from collections.abc import Sequence

from .cache import WebsiteCache
from .config import DEFAULT_REQUEST_TIMEOUT, DEFAULT_WORKERS, ResolverConfig
from .errors import ConfigError, StorageError
from .logging_utils import configure_logging, get_logger
from .pipeline import build_providers_for, build_store, probe_providers, run_pipeline
from .providers import make_session
from .validation import is_supported_url, load_lines_from_file

CACHE_FILE_ENV = "SITEMETA_CACHE_FILE"


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="sitemeta - resolve link titles and descriptions through a chain of metadata APIs."
    )
    parser.add_argument("urls", nargs="*", help="Site URLs to resolve.")
    parser.add_argument("--urls-file", help="Path to URL file (one URL per line).")
    parser.add_argument("--output", default="site_metadata.csv", help="Output CSV path.")
    parser.add_argument(
        "--cache-file",
        help=f"JSON file persisting cache and breaker state (or set {CACHE_FILE_ENV}).",
    )
    parser.add_argument(
        "--workers", type=int, default=DEFAULT_WORKERS, help="Number of concurrent resolutions."
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Per-request timeout in seconds.",
    )
    parser.add_argument(
        "--probe",
        action="store_true",
        help="Query every provider directly for the first URL and print the answers.",
    )
    parser.add_argument(
        "--clear-cache", action="store_true", help="Remove cached metadata before running."
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.urls or args.urls_file or args.clear_cache):
        parser.error("Provide URLs, --urls-file, or --clear-cache.")
    return args


def _materialize_urls(args: argparse.Namespace) -> list[str]:
    urls = list(args.urls)
    if args.urls_file:
        urls.extend(load_lines_from_file(args.urls_file))
    return urls


def namespace_to_config(args: argparse.Namespace) -> ResolverConfig:
    """Convert CLI args to validated ResolverConfig."""
    return ResolverConfig(
        request_timeout=args.timeout,
        cache_file=args.cache_file or os.getenv(CACHE_FILE_ENV) or None,
        workers=args.workers,
        show_progress=not args.no_progress,
    )


def _run_probe(config: ResolverConfig, url: str) -> int:
    logger = get_logger()
    store = build_store(config)
    session = make_session(config.user_agent)
    providers = build_providers_for(config, store=store, session=session, logger=logger)
    for row in probe_providers(url, providers):
        print(json.dumps(row, ensure_ascii=False))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
        urls = _materialize_urls(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    except OSError as exc:
        logger.error("Cannot read URL file: %s", exc)
        return 2

    try:
        if args.clear_cache:
            removed = WebsiteCache(build_store(config), logger=logger).clear()
            print(f"Removed {removed} cached entries")
            if not urls:
                return 0
        if not urls:
            logger.error("No URLs to resolve.")
            return 2

        if args.probe:
            if not is_supported_url(urls[0]):
                logger.error("Cannot probe unsupported URL: %s", urls[0])
                return 2
            return _run_probe(config, urls[0])

        output = run_pipeline(config, urls, args.output, logger=logger)
    except StorageError as exc:
        logger.error("Cache storage failed: %s", exc)
        return 1
    print(f"Wrote results to {output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
