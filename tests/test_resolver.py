import logging
import time
from collections.abc import Callable
from threading import Event, Thread

from sitemeta.cache import WebsiteCache
from sitemeta.models import ProviderResult, WebsiteData
from sitemeta.resolver import (
    DOMESTIC_ORDER,
    INTERNATIONAL_ORDER,
    MetadataResolver,
    best_partial_title,
    is_domestic_site,
    is_placeholder,
    placeholder_for,
    provider_order,
)
from sitemeta.storage import MemoryStore

NAMES = ("microlink", "ahfi", "xxapi", "jxcxin", "uapis")


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeProvider:
    def __init__(
        self,
        name: str,
        calls: list[str],
        result: WebsiteData | None = None,
        error: Exception | None = None,
        available: bool = True,
    ) -> None:
        self.name = name
        self._calls = calls
        self._result = result or WebsiteData()
        self._error = error
        self._available = available

    def is_available(self) -> bool:
        return self._available

    def fetch(self, url: str) -> WebsiteData:
        self._calls.append(self.name)
        if self._error is not None:
            raise self._error
        return self._result


class BlockingProvider(FakeProvider):
    def __init__(
        self,
        name: str,
        calls: list[str],
        result: WebsiteData,
        *,
        started: Event,
        release: Event,
    ) -> None:
        super().__init__(name, calls, result)
        self._started = started
        self._release = release

    def fetch(self, url: str) -> WebsiteData:
        self._calls.append(self.name)
        self._started.set()
        self._release.wait(timeout=5)
        return self._result


def _providers(
    calls: list[str], results: dict[str, WebsiteData] | None = None, **overrides: FakeProvider
) -> dict[str, FakeProvider]:
    results = results or {}
    providers = {name: FakeProvider(name, calls, results.get(name)) for name in NAMES}
    providers.update(overrides)
    return providers


def _resolver(
    providers: dict[str, FakeProvider],
    store: MemoryStore | None = None,
    observer: Callable[[str, ProviderResult], None] | None = None,
    spawn: Callable[[Callable[[], object]], None] = lambda target: None,
) -> MetadataResolver:
    clock = FakeClock()
    logger = logging.getLogger("test")
    cache = WebsiteCache(store if store is not None else MemoryStore(), logger=logger, clock=clock)
    return MetadataResolver(
        providers=providers,  # type: ignore[arg-type]
        cache=cache,
        logger=logger,
        observer=observer,
        clock=clock,
        spawn=spawn,
    )


def test_locale_classification_and_ordering() -> None:
    assert is_domestic_site("https://www.example.cn/") is True
    assert is_domestic_site("https://space.bilibili.com/123") is True
    assert is_domestic_site("https://shop.example.com.tw") is True
    assert is_domestic_site("https://example.com/") is False
    assert is_domestic_site("not a url") is False
    assert provider_order("https://example.cn") == DOMESTIC_ORDER
    assert provider_order("https://example.com") == INTERNATIONAL_ORDER
    assert DOMESTIC_ORDER[0] != INTERNATIONAL_ORDER[0]


def test_attempt_order_differs_by_locale() -> None:
    calls: list[str] = []
    resolver = _resolver(_providers(calls))
    resolver.resolve("https://example.cn")
    domestic_calls = list(calls)
    calls.clear()
    resolver.resolve("https://example.com")

    assert domestic_calls == list(DOMESTIC_ORDER)
    assert calls == list(INTERNATIONAL_ORDER)
    assert domestic_calls[0] != calls[0]


def test_first_complete_result_short_circuits_and_is_cached() -> None:
    calls: list[str] = []
    full = WebsiteData(title="Example", description="An example site")
    resolver = _resolver(_providers(calls, {"jxcxin": full}))

    assert resolver.resolve("https://example.com") == full
    assert calls == ["jxcxin"]
    assert resolver.resolve("https://example.com") == full
    assert calls == ["jxcxin"]


def test_longest_partial_title_becomes_description() -> None:
    calls: list[str] = []
    results = dict(
        zip(
            INTERNATIONAL_ORDER,
            [
                WebsiteData(),
                WebsiteData(title="A"),
                WebsiteData(),
                WebsiteData(title="ABC"),
                WebsiteData(),
            ],
        )
    )
    resolver = _resolver(_providers(calls, results))

    assert resolver.resolve("https://example.com") == WebsiteData(title="ABC", description="ABC")
    assert calls == list(INTERNATIONAL_ORDER)


def test_titles_mentioning_errors_still_become_the_fallback() -> None:
    calls: list[str] = []
    store = MemoryStore()
    results = dict(
        zip(
            INTERNATIONAL_ORDER,
            [WebsiteData(), WebsiteData(title="Error Handling in Rust"), WebsiteData()],
        )
    )
    resolver = _resolver(_providers(calls, results), store=store)

    expected = WebsiteData(title="Error Handling in Rust", description="Error Handling in Rust")
    assert resolver.resolve("https://example.com/rust") == expected
    assert calls == list(INTERNATIONAL_ORDER)
    assert store.get("website_data_https://example.com/rust") is not None


def test_concurrent_resolves_share_one_provider_chain() -> None:
    calls: list[str] = []
    started = Event()
    release = Event()
    full = WebsiteData(title="Example", description="An example site")
    slow = BlockingProvider("jxcxin", calls, full, started=started, release=release)
    resolver = _resolver(_providers(calls, jxcxin=slow))

    results: list[WebsiteData] = []
    threads = [
        Thread(target=lambda: results.append(resolver.resolve("https://example.com")))
        for _ in range(5)
    ]
    threads[0].start()
    assert started.wait(timeout=5)
    for thread in threads[1:]:
        thread.start()
    # Give the followers time to reach the in-flight wait.
    time.sleep(0.1)
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert results == [full] * 5
    assert calls == ["jxcxin"]


def test_terminal_placeholder_is_cached_for_the_session() -> None:
    calls: list[str] = []
    store = MemoryStore()
    resolver = _resolver(_providers(calls), store=store)

    expected = WebsiteData(description="visit example.com website")
    assert resolver.resolve("https://example.com/page") == expected
    assert len(calls) == 5
    assert resolver.resolve("https://example.com/page") == expected
    assert len(calls) == 5
    assert store.get("website_data_https://example.com/page") is not None


def test_placeholder_from_an_earlier_session_is_resolved_again() -> None:
    store = MemoryStore()
    first_calls: list[str] = []
    _resolver(_providers(first_calls), store=store).resolve("https://example.com/page")

    calls: list[str] = []
    full = WebsiteData(title="Example", description="Now it answers")
    fresh = _resolver(_providers(calls, {"jxcxin": full}), store=store)
    assert fresh.resolve("https://example.com/page") == full
    assert calls == ["jxcxin"]


def test_open_circuit_skips_provider() -> None:
    calls: list[str] = []
    providers = _providers(
        calls, microlink=FakeProvider("microlink", calls, WebsiteData(title="x"), available=False)
    )
    resolver = _resolver(providers)
    resolver.resolve("https://example.com")

    assert "microlink" not in calls
    attempts = resolver.attempts("https://example.com")
    skipped = [item for item in attempts if item.provider == "microlink"]
    assert skipped[0].success is False
    assert skipped[0].error == "circuit open"


def test_provider_exceptions_do_not_abort_the_chain() -> None:
    calls: list[str] = []
    full = WebsiteData(title="Example", description="Recovered later")
    providers = _providers(
        calls,
        {"ahfi": full},
        jxcxin=FakeProvider("jxcxin", calls, error=RuntimeError("boom")),
    )
    resolver = _resolver(providers)

    assert resolver.resolve("https://example.com") == full
    attempts = resolver.attempts("https://example.com")
    assert [(item.provider, item.success, item.error) for item in attempts] == [
        ("jxcxin", False, "boom"),
        ("ahfi", True, None),
    ]


def test_observer_sees_every_attempt() -> None:
    seen: list[tuple[str, str]] = []
    calls: list[str] = []
    resolver = _resolver(
        _providers(calls), observer=lambda url, result: seen.append((url, result.provider))
    )
    resolver.resolve("https://example.com")
    assert seen == [("https://example.com", name) for name in INTERNATIONAL_ORDER]


def test_cache_sweep_is_scheduled_once_per_session() -> None:
    scheduled: list[Callable[[], object]] = []
    calls: list[str] = []
    resolver = _resolver(_providers(calls), spawn=scheduled.append)
    resolver.resolve("https://a.example")
    resolver.resolve("https://b.example")
    assert len(scheduled) == 1
    assert scheduled[0]() == 0


def test_placeholder_helpers() -> None:
    assert placeholder_for("https://www.example.com/x") == WebsiteData(
        description="visit example.com website"
    )
    assert is_placeholder(WebsiteData(description="visit example.com website")) is True
    assert is_placeholder(WebsiteData(title="t", description="visit example.com website")) is False
    assert best_partial_title([]) is None
    assert best_partial_title(
        [("a", WebsiteData(title="Short")), ("b", WebsiteData(title="Longer"))]
    ) == ("b", "Longer")
