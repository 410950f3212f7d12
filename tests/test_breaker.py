import logging
from collections.abc import Iterator

from sitemeta.breaker import BREAKER_KEY, CircuitBreaker, is_available_at
from sitemeta.errors import StorageError
from sitemeta.storage import MemoryStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FailingStore:
    def get(self, key: str) -> str | None:
        raise StorageError("unavailable")

    def set(self, key: str, value: str) -> None:
        raise StorageError("unavailable")

    def delete(self, key: str) -> None:
        raise StorageError("unavailable")

    def keys(self) -> Iterator[str]:
        return iter([])


def _breaker(store: object, clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(
        store,  # type: ignore[arg-type]
        logger=logging.getLogger("test"),
        clock=clock,
    )


def test_is_available_at_is_a_pure_comparison() -> None:
    assert is_available_at(1000, 0) is True
    assert is_available_at(999, 1000) is False
    assert is_available_at(1000, 1000) is True


def test_breaker_starts_available() -> None:
    breaker = _breaker(MemoryStore(), FakeClock())
    assert breaker.is_available() is True
    assert breaker.blocked_until() == 0


def test_block_holds_for_ten_minutes() -> None:
    clock = FakeClock()
    start = clock.now
    breaker = _breaker(MemoryStore(), clock)

    deadline = breaker.block("HTTP 429")
    assert deadline == int((start + 600) * 1000)
    for offset in (0.0, 1.0, 300.0, 599.999):
        clock.now = start + offset
        assert breaker.is_available() is False
    clock.now = start + 600
    assert breaker.is_available() is True
    clock.now = start + 3600
    assert breaker.is_available() is True


def test_block_is_shared_through_the_store_and_cleared_lazily() -> None:
    store = MemoryStore()
    clock = FakeClock()
    _breaker(store, clock).block("rate limit code ERATE")

    other = _breaker(store, clock)
    assert other.is_available() is False
    assert store.get(BREAKER_KEY) is not None

    clock.now += 601
    assert other.is_available() is True
    assert store.get(BREAKER_KEY) is None


def test_unreadable_state_is_discarded() -> None:
    store = MemoryStore()
    store.set(BREAKER_KEY, "garbage")
    breaker = _breaker(store, FakeClock())
    assert breaker.is_available() is True
    assert store.get(BREAKER_KEY) is None


def test_block_survives_store_failures() -> None:
    clock = FakeClock()
    breaker = _breaker(FailingStore(), clock)
    breaker.block("network error")
    assert breaker.is_available() is False
    clock.now += 600
    assert breaker.is_available() is True
