import threading

import pytest

from gridfill.cache import CacheProvider, MemoryCache, NullCache, build_cache
from gridfill.datasource import RecordCollection
from gridfill.settings import Settings


def test_put_runs_producer_once_per_identity() -> None:
    cache = MemoryCache()
    calls: list[int] = []

    def producer() -> RecordCollection:
        calls.append(1)
        return RecordCollection([{"id": 1}])

    first = cache.put("orders", producer)
    second = cache.put("orders", producer)

    assert first is second
    assert len(calls) == 1
    assert cache.get("orders") is first
    assert "orders" in cache


def test_identities_do_not_share_entries() -> None:
    cache = MemoryCache()
    cache.put("a", lambda: RecordCollection([{"id": 1}]))
    cache.put("b", lambda: RecordCollection([{"id": 2}]))
    assert cache.get("a") == [{"id": 1}]
    assert cache.get("b") == [{"id": 2}]
    assert len(cache) == 2


def test_forget_makes_next_put_produce_again() -> None:
    cache = MemoryCache()
    cache.put("orders", lambda: RecordCollection([{"id": 1}]))
    cache.forget("orders")
    assert cache.get("orders") is None

    fresh = cache.put("orders", lambda: RecordCollection([{"id": 2}]))
    assert fresh == [{"id": 2}]
    # forgetting an unknown identity is a no-op
    cache.forget("never-seen")


def test_identity_locks_are_released_after_use() -> None:
    cache = MemoryCache()
    for n in range(50):
        cache.put(f"grid-{n}", lambda: RecordCollection([]))
        cache.put_forced(f"grid-{n}", RecordCollection([{"id": n}]))
        cache.forget(f"grid-{n}")

    assert len(cache) == 0
    assert len(cache._locks) == 0


def test_put_forced_replaces_entry() -> None:
    cache = MemoryCache()
    cache.put("orders", lambda: RecordCollection([{"id": 1}]))
    replacement = RecordCollection([{"id": 9}])
    assert cache.put_forced("orders", replacement) is replacement
    assert cache.get("orders") is replacement


def test_failing_producer_stores_nothing() -> None:
    cache = MemoryCache()

    def boom() -> RecordCollection:
        raise RuntimeError("source unavailable")

    with pytest.raises(RuntimeError):
        cache.put("orders", boom)
    assert cache.get("orders") is None
    assert cache.put("orders", lambda: RecordCollection([{"id": 1}])) == [{"id": 1}]


def test_concurrent_first_access_produces_once() -> None:
    cache = MemoryCache()
    calls: list[int] = []
    start = threading.Barrier(8)

    def producer() -> RecordCollection:
        calls.append(1)
        return RecordCollection([{"id": 1}])

    def worker() -> None:
        start.wait()
        cache.put("orders", producer)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1


def test_null_cache_never_stores() -> None:
    cache = NullCache()
    calls: list[int] = []

    def producer() -> RecordCollection:
        calls.append(1)
        return RecordCollection([{"id": 1}])

    cache.put("orders", producer)
    cache.put("orders", producer)
    assert len(calls) == 2
    assert cache.get("orders") is None


def test_build_cache_follows_settings_gate() -> None:
    assert isinstance(build_cache(Settings(cache_enabled=True)), MemoryCache)
    assert isinstance(build_cache(Settings(cache_enabled=False)), NullCache)
    assert isinstance(build_cache(), CacheProvider)
