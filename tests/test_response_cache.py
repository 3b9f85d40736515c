"""Unit tests for the in-memory ResponseCache."""

import threading

import pytest

from app.utils import response_cache
from app.utils.response_cache import ResponseCache, build_cache_key


class FakeTime:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def test_build_cache_key_sorts_query_params() -> None:
    key1 = build_cache_key("/api/v1/user/profile", 1, [("a", "1"), ("b", "2")])
    key2 = build_cache_key("/api/v1/user/profile", 1, [("b", "2"), ("a", "1")])
    key3 = build_cache_key("/api/v1/user/profile", 1, [("a", "2")])

    assert key1 == key2
    assert key1 != key3


def test_build_cache_key_is_namespaced_per_user() -> None:
    key_alice = build_cache_key("/api/v1/user/profile", 1)
    key_bob = build_cache_key("/api/v1/user/profile", 2)

    assert key_alice.startswith("cache:user:1:")
    assert key_bob.startswith("cache:user:2:")
    assert key_alice.split(":")[-1] == key_bob.split(":")[-1]


def test_set_and_get_updates_hit_miss_counters() -> None:
    cache = ResponseCache(ttl_seconds=10)

    assert cache.get("missing") is None
    cache.set("key", {"success": True})

    assert cache.get("key") == {"success": True}
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


def test_expired_entry_is_evicted(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_time = FakeTime()
    monkeypatch.setattr(response_cache, "time", fake_time)

    cache = ResponseCache(ttl_seconds=5)
    cache.set("key", {"data": True})

    fake_time.advance(6)

    assert cache.get("key") is None
    assert cache.stats()["evictions"] == 1


def test_explicit_ttl_overrides_default(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_time = FakeTime()
    monkeypatch.setattr(response_cache, "time", fake_time)

    cache = ResponseCache(ttl_seconds=100)
    cache.set("short", {"v": 1}, ttl_seconds=1)
    fake_time.advance(2)

    assert cache.get("short") is None


def test_lru_eviction_removes_least_recently_used() -> None:
    cache = ResponseCache(ttl_seconds=100, max_entries=2)
    cache.set("a", {"v": 1})
    cache.set("b", {"v": 2})

    assert cache.get("a") == {"v": 1}

    cache.set("c", {"v": 3})

    assert cache.get("a") == {"v": 1}
    assert cache.get("c") == {"v": 3}
    assert cache.get("b") is None


def test_invalidate_user_only_touches_that_user() -> None:
    cache = ResponseCache(ttl_seconds=100)
    alice_profile = build_cache_key("/profile", 1)
    alice_other = build_cache_key("/other", 1)
    bob_profile = build_cache_key("/profile", 2)
    for key in (alice_profile, alice_other, bob_profile):
        cache.set(key, {"k": key})

    assert cache.invalidate_user(1) == 2
    assert cache.get(alice_profile) is None
    assert cache.get(bob_profile) == {"k": bob_profile}


def test_delete_single_key() -> None:
    cache = ResponseCache()
    cache.set("a", {"v": 1})

    assert cache.delete("a") is True
    assert cache.delete("a") is False


def test_clear_resets_state() -> None:
    cache = ResponseCache(ttl_seconds=10)
    cache.set("a", {"v": 1})
    cache.get("a")

    cache.clear()

    assert cache.stats() == {
        "ttl_seconds": 10,
        "max_entries": 1024,
        "entries": 0,
        "hits": 0,
        "misses": 0,
        "evictions": 0,
    }


def test_thread_safety_under_concurrent_sets() -> None:
    cache = ResponseCache(ttl_seconds=30, max_entries=None)
    total_keys = 50

    def _writer(idx: int) -> None:
        cache.set(f"k-{idx}", {"v": idx})

    threads = [threading.Thread(target=_writer, args=(i,)) for i in range(total_keys)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cache.stats()["entries"] == total_keys
    assert cache.get("k-25") == {"v": 25}
