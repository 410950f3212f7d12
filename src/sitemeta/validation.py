"""URL helpers and runtime guardrails."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigError


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def hostname_from_url(url: str) -> str:
    """Extract the lowercase hostname from a URL, or an empty string."""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def display_domain(url: str) -> str:
    """Return the hostname without a leading ``www.``, falling back to the raw URL."""
    host = hostname_from_url(url)
    if not host:
        return url.strip()
    if host.startswith("www."):
        return host[len("www.") :]
    return host


def normalize_urls(urls: list[str]) -> list[str]:
    """Strip, drop unsupported, and dedupe URLs preserving first-seen order."""
    output: list[str] = []
    seen: set[str] = set()
    for raw in urls:
        value = raw.strip()
        if not is_supported_url(value):
            continue
        if value in seen:
            continue
        seen.add(value)
        output.append(value)
    return output


def load_lines_from_file(path: str) -> list[str]:
    """Load non-empty, non-comment lines from a UTF-8 text file."""
    content = Path(path).read_text(encoding="utf-8")
    lines = [line.strip() for line in content.splitlines()]
    return [line for line in lines if line and not line.startswith("#")]


def validate_runtime_constraints(
    *,
    request_timeout: float,
    cache_ttl: float,
    breaker_cooldown: float,
    min_request_interval: float,
    max_queue_size: int,
    sweep_max_checked: int,
    sweep_max_deleted: int,
    workers: int,
) -> None:
    """Validate runtime configuration and raise ConfigError on invalid values."""
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    if cache_ttl <= 0:
        raise ConfigError("cache TTL must be > 0.")
    if breaker_cooldown < 0:
        raise ConfigError("breaker cooldown must be >= 0.")
    if min_request_interval < 0:
        raise ConfigError("minimum request interval must be >= 0.")
    if max_queue_size < 1:
        raise ConfigError("queue size must be >= 1.")
    if sweep_max_checked < 1 or sweep_max_deleted < 1:
        raise ConfigError("cache sweep limits must be >= 1.")
    if workers < 1:
        raise ConfigError("--workers must be >= 1.")
