# tests/storage/test_cache.py
"""
Tests for CacheLayer.

These tests verify:
- Basic set/get/remove/clear operations
- Sliding TTL expiration
- LRU eviction against byte and count bounds
- Typed reads and unserializable values
- The background janitor
- Thread safety and statistics
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from pomeocore.config.models import CacheConfig
from pomeocore.models import Project, Task
from pomeocore.storage import codec
from pomeocore.storage.cache import CacheEntry, CacheLayer, create_cache


def _value_of_size(size: int) -> str:
    """A string whose JSON encoding is exactly ``size`` bytes."""
    return "x" * (size - 2)


@pytest.fixture
def cache(clock):
    return CacheLayer(clock=clock)


# =============================================================================
# BASIC OPERATIONS
# =============================================================================


class TestBasicOperations:
    """Test basic set and get operations."""

    def test_set_then_get_returns_value(self, cache):
        cache.set("task_1", {"title": "Write report", "done": False}, ttl=300)
        assert cache.get("task_1") == {"title": "Write report", "done": False}

    def test_get_missing_key(self, cache):
        assert cache.get("task_missing") is None

    def test_set_overwrites(self, cache):
        cache.set("k", "first")
        cache.set("k", "second")
        assert cache.get("k") == "second"
        assert len(cache) == 1

    def test_overwrite_updates_size_accounting(self, cache):
        cache.set("k", _value_of_size(100))
        cache.set("k", _value_of_size(40))
        assert cache.size_bytes() == 40

    def test_get_returns_fresh_copy(self, cache):
        """Mutating a returned value does not change the cached snapshot."""
        cache.set("k", {"tags": ["a"]})
        first = cache.get("k")
        first["tags"].append("b")
        assert cache.get("k") == {"tags": ["a"]}

    def test_entity_round_trip(self, cache):
        task = Task(title="Plan sprint")
        cache.set(task.storage_key, task)
        cached = cache.get(task.storage_key, Task)
        assert isinstance(cached, Task)
        assert cached == task

    def test_remove(self, cache):
        cache.set("k", 1)
        assert cache.remove("k") is True
        assert cache.remove("k") is False
        assert cache.get("k") is None
        assert cache.size_bytes() == 0

    def test_clear(self, cache):
        for i in range(5):
            cache.set(f"k{i}", i)
        assert cache.clear() == 5
        assert len(cache) == 0
        assert cache.size_bytes() == 0
        assert cache.clear() == 0

    def test_keys_with_prefix(self, cache):
        cache.set("task_1", 1)
        cache.set("task_2", 2)
        cache.set("project_1", 3)
        assert sorted(cache.keys("task_")) == ["task_1", "task_2"]
        assert len(cache.keys()) == 3

    def test_contains(self, cache):
        cache.set("k", 1)
        assert "k" in cache
        assert "other" not in cache


# =============================================================================
# TYPED READS
# =============================================================================


class TestTypedReads:
    """Test expected-type filtering."""

    def test_type_mismatch_is_a_miss(self, cache):
        task = Task(title="A")
        cache.set(task.storage_key, task)
        assert cache.get(task.storage_key, Project) is None
        # The entry itself is still there for readers of the right type.
        assert cache.get(task.storage_key, Task) == task

    def test_type_mismatch_counts_as_miss(self, cache):
        cache.set("k", "text")
        cache.get("k", int)
        assert cache.stats()["misses"] == 1

    def test_unserializable_value_uses_fallback_size(self, cache):
        marker = object()
        cache.set("k", marker)
        assert cache.size_bytes() == 1024
        assert cache.get("k") is marker

    def test_custom_fallback_size(self, clock):
        cache = CacheLayer(fallback_size=64, clock=clock)
        cache.set("k", object())
        assert cache.size_bytes() == 64


# =============================================================================
# TTL EXPIRATION
# =============================================================================


class TestExpiration:
    """Test sliding TTL behavior."""

    def test_expired_on_first_read_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl=300)
        clock.advance(301)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_read_refreshes_access_time(self, cache, clock):
        cache.set("k", "v", ttl=300)
        clock.advance(100)
        assert cache.get("k") == "v"
        clock.advance(250)  # t0 + 350, 250s after the last read
        assert cache.get("k") == "v"

    def test_exactly_ttl_is_not_expired(self, cache, clock):
        cache.set("k", "v", ttl=300)
        clock.advance(300)
        assert cache.get("k") == "v"

    def test_default_ttl(self, clock):
        cache = CacheLayer(default_ttl=10, clock=clock)
        cache.set("k", "v")
        clock.advance(11)
        assert cache.get("k") is None

    def test_exists_does_not_refresh(self, cache, clock):
        cache.set("k", "v", ttl=300)
        clock.advance(200)
        assert cache.exists("k") is True
        clock.advance(150)
        assert cache.exists("k") is False
        assert len(cache) == 0

    def test_set_resets_access_time(self, cache, clock):
        cache.set("k", "v1", ttl=300)
        clock.advance(250)
        cache.set("k", "v2", ttl=300)
        clock.advance(250)
        assert cache.get("k") == "v2"

    def test_cleanup_removes_expired(self, cache, clock):
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=1000)
        clock.advance(20)
        assert cache.cleanup() == 1
        assert cache.keys() == ["long"]
        assert cache.stats()["expirations"] == 1

    def test_keys_skip_expired(self, cache, clock):
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=100)
        clock.advance(50)
        assert cache.keys() == ["b"]


# =============================================================================
# EVICTION
# =============================================================================


class TestEviction:
    """Test LRU eviction against both bounds."""

    def test_byte_bound_evicts_oldest(self, clock):
        cache = CacheLayer(max_bytes=500, max_count=100, clock=clock)
        for i in range(6):
            cache.set(f"k{i}", _value_of_size(100))
            clock.advance(1)

        assert cache.size_bytes() <= 500
        assert sorted(cache.keys()) == ["k1", "k2", "k3", "k4", "k5"]

    def test_eviction_respects_recent_reads(self, clock):
        cache = CacheLayer(max_bytes=500, max_count=100, clock=clock)
        for i in range(5):
            cache.set(f"k{i}", _value_of_size(100))
            clock.advance(1)
        cache.get("k0")
        clock.advance(1)
        cache.set("k5", _value_of_size(100))

        assert "k0" in cache
        assert "k1" not in cache
        assert cache.size_bytes() == 500

    def test_count_bound(self, clock):
        cache = CacheLayer(max_count=3, clock=clock)
        for i in range(5):
            cache.set(f"k{i}", i)
            clock.advance(1)
        assert len(cache) == 3
        assert sorted(cache.keys()) == ["k2", "k3", "k4"]
        assert cache.stats()["evictions"] == 2

    def test_remaining_are_most_recently_accessed(self, clock):
        cache = CacheLayer(max_bytes=1000, max_count=100, clock=clock)
        for i in range(20):
            cache.set(f"k{i}", _value_of_size(150))
            clock.advance(1)
        # 1000 // 150 = 6 entries fit
        assert len(cache) == 6
        assert sorted(cache.keys()) == sorted(f"k{i}" for i in range(14, 20))

    def test_oversized_value_evicts_everything(self, clock):
        cache = CacheLayer(max_bytes=100, clock=clock)
        cache.set("small", _value_of_size(50))
        cache.set("huge", _value_of_size(500))
        assert len(cache) == 0
        assert cache.size_bytes() == 0

    def test_cleanup_enforces_bounds(self, clock):
        cache = CacheLayer(max_count=10, clock=clock)
        for i in range(5):
            cache.set(f"k{i}", i)
            clock.advance(1)
        cache.max_count = 2
        assert cache.cleanup() == 3
        assert sorted(cache.keys()) == ["k3", "k4"]


# =============================================================================
# STATS, CONFIG, CONCURRENCY
# =============================================================================


class TestStats:
    """Test statistics tracking."""

    def test_hit_rate(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.get("k")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["sets"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)
        assert stats["entry_count"] == 1

    def test_empty_hit_rate(self, cache):
        assert cache.stats()["hit_rate"] == 0.0


class TestConfig:
    """Test construction from configuration."""

    def test_config_overrides_arguments(self):
        config = CacheConfig(max_bytes=2048, max_count=7, default_ttl_seconds=42)
        cache = CacheLayer(max_count=1, config=config)
        assert cache.max_bytes == 2048
        assert cache.max_count == 7
        assert cache.default_ttl == 42

    def test_factory(self):
        assert create_cache(CacheConfig(max_count=5)).max_count == 5
        assert create_cache(max_count=9).max_count == 9

    def test_entry_expiry_is_sliding(self):
        entry = CacheEntry(
            key="k", snapshot='"v"', value_type=str, fallback=None,
            timestamp=0.0, ttl=10.0, size=3, last_access_time=5.0,
        )
        assert not entry.is_expired(15.0)
        assert entry.is_expired(15.5)


class TestConcurrency:
    """Test thread safety."""

    def test_concurrent_writers(self):
        cache = CacheLayer(max_count=50)

        def writer(n: int) -> None:
            for i in range(100):
                cache.set(f"w{n}_{i}", {"n": n, "i": i})
                cache.get(f"w{n}_{i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(writer, range(8)))

        assert len(cache) == 50
        expected = sum(codec.encoded_size(codec.encode(cache.get(k))) for k in cache.keys())
        assert cache.size_bytes() == expected


class TestJanitor:
    """Test the background cleanup task."""

    @pytest.mark.asyncio
    async def test_janitor_sweeps_expired_entries(self, clock):
        cache = CacheLayer(cleanup_interval=0.01, clock=clock)
        cache.set("k", "v", ttl=1)
        clock.advance(5)

        cache.start_janitor()
        for _ in range(100):
            if len(cache) == 0:
                break
            await asyncio.sleep(0.01)
        await cache.stop_janitor()

        assert len(cache) == 0
        assert cache.janitor.run_count >= 1
        assert not cache.janitor.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, cache):
        await cache.stop_janitor()
        assert cache.janitor is None
