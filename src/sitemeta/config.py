"""Runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass

from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SiteCard/1.0)"
DEFAULT_REQUEST_TIMEOUT = 8.0
DEFAULT_CACHE_TTL = 7 * 24 * 60 * 60.0
DEFAULT_BREAKER_COOLDOWN = 10 * 60.0
DEFAULT_MIN_REQUEST_INTERVAL = 0.4
DEFAULT_MAX_QUEUE_SIZE = 100
DEFAULT_SWEEP_MAX_CHECKED = 100
DEFAULT_SWEEP_MAX_DELETED = 50
DEFAULT_WORKERS = 4

# Hosts ending with any of these are resolved with the domestic provider order.
DEFAULT_DOMESTIC_DOMAINS: tuple[str, ...] = (
    ".cn",
    ".com.cn",
    ".net.cn",
    ".org.cn",
    ".gov.cn",
    ".edu.cn",
    ".hk",
    ".mo",
    ".tw",
    "bilibili.com",
    "zhihu.com",
    "weibo.com",
    "baidu.com",
    "taobao.com",
    "jd.com",
    "douyin.com",
    "toutiao.com",
    "kuaishou.com",
)


@dataclass(frozen=True)
class ResolverConfig:
    """Validated configuration used by the resolver and the batch pipeline.

    Durations are in seconds.
    """

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    cache_ttl: float = DEFAULT_CACHE_TTL
    breaker_cooldown: float = DEFAULT_BREAKER_COOLDOWN
    min_request_interval: float = DEFAULT_MIN_REQUEST_INTERVAL
    max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE
    sweep_max_checked: int = DEFAULT_SWEEP_MAX_CHECKED
    sweep_max_deleted: int = DEFAULT_SWEEP_MAX_DELETED
    user_agent: str = DEFAULT_USER_AGENT
    domestic_domains: tuple[str, ...] = DEFAULT_DOMESTIC_DOMAINS
    cache_file: str | None = None
    workers: int = DEFAULT_WORKERS
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            request_timeout=self.request_timeout,
            cache_ttl=self.cache_ttl,
            breaker_cooldown=self.breaker_cooldown,
            min_request_interval=self.min_request_interval,
            max_queue_size=self.max_queue_size,
            sweep_max_checked=self.sweep_max_checked,
            sweep_max_deleted=self.sweep_max_deleted,
            workers=self.workers,
        )
