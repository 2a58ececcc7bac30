"""
Tests for the two-tier component cache.
"""

import logging
import os
import time
from pathlib import Path

import allure
import pytest
from hypothesis import given, settings, strategies as st

from prompt_composer.cache import ComponentCache, format_size


class FakeClock:
    """Controllable time source."""

    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


encodable_text = st.text(alphabet=st.characters(exclude_categories=("Cs",)), max_size=200)


@allure.feature("Component Cache")
@allure.story("Stored values are returned unchanged")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(key=encodable_text, value=encodable_text)
def test_set_then_get_returns_value(tmp_path_factory, key: str, value: str):
    cache_dir = tmp_path_factory.mktemp("cache")
    cache = ComponentCache(cache_dir)
    cache.set(key, value)

    assert cache.get(key) == value
    # A fresh instance only has the disk tier.
    assert ComponentCache(cache_dir).get(key) == value


@allure.feature("Component Cache")
@allure.story("Memory tier is least recently used")
@allure.severity(allure.severity_level.CRITICAL)
def test_lru_eviction_order(cache: ComponentCache):
    for key in ("a", "b", "c"):
        cache.set(key, key.upper())
    assert cache.get("a") == "A"
    cache.set("d", "D")

    assert [item["key"] for item in cache.export()["memory"]] == ["c", "a", "d"]
    assert cache.get_stats()["evictions"] == 1


@allure.feature("Component Cache")
@allure.story("Evicted entries are served from disk")
@allure.severity(allure.severity_level.NORMAL)
def test_evicted_entry_is_read_back_from_disk(cache: ComponentCache):
    for index in range(4):
        cache.set(f"k{index}", f"value {index}")
    assert cache.get_stats()["memory_items"] == 3

    assert cache.get("k0") == "value 0"
    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["evictions"] == 2
    assert "k0" in [item["key"] for item in cache.export()["memory"]]


@allure.feature("Component Cache")
@allure.story("Expiry")
@allure.severity(allure.severity_level.CRITICAL)
def test_entries_expire_after_max_age(tmp_path: Path):
    clock = FakeClock()
    cache = ComponentCache(tmp_path / "cache", max_age=60, clock=clock)
    cache.set("key", "value")
    clock.advance(30)
    assert cache.get("key") == "value"

    clock.advance(31)
    assert cache.get("key") is None
    assert not cache.file_path("key").exists()
    assert cache.get_stats()["misses"] == 1


@allure.feature("Component Cache")
@allure.story("Expiry")
@allure.severity(allure.severity_level.NORMAL)
def test_stale_disk_file_is_ignored(tmp_path: Path):
    cache_dir = tmp_path / "cache"
    ComponentCache(cache_dir).set("key", "value")
    path = ComponentCache(cache_dir).file_path("key")
    old = time.time() - 7200
    os.utime(path, (old, old))

    assert ComponentCache(cache_dir, max_age=3600).get("key") is None
    assert not path.exists()


@allure.feature("Component Cache")
@allure.story("Prune")
@allure.severity(allure.severity_level.NORMAL)
def test_prune_removes_expired_entries_from_both_tiers(tmp_path: Path):
    clock = FakeClock()
    cache = ComponentCache(tmp_path / "cache", max_age=60, clock=clock)
    cache.set("a", "1")
    cache.set("b", "2")
    assert cache.prune() == 0

    clock.advance(61)
    assert cache.prune() == 4
    size = cache.get_size()
    assert size["memory_items"] == 0
    assert size["disk_files"] == 0


@allure.feature("Component Cache")
@allure.story("Statistics")
@allure.severity(allure.severity_level.NORMAL)
def test_stats_and_clear(cache: ComponentCache):
    cache.set("a", "x")
    cache.get("a")
    cache.get("b")
    cache.get("c")

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["writes"] == 1
    assert stats["hit_rate"] == "33.33%"

    cache.clear()
    assert cache.get_stats() == {
        "hits": 0,
        "misses": 0,
        "writes": 0,
        "evictions": 0,
        "hit_rate": "0.00%",
        "memory_items": 0,
    }
    assert cache.get_size()["disk_files"] == 0


@allure.feature("Component Cache")
@allure.story("Size reporting")
@allure.severity(allure.severity_level.MINOR)
def test_get_size(cache: ComponentCache):
    cache.set("a", "x" * 2048)
    size = cache.get_size()
    assert size["memory_items"] == 1
    assert size["memory_size"] == "2.00 KB"
    assert size["disk_files"] == 1
    assert size["disk_size"] == "2.00 KB"
    assert size["total_size"] == "4.00 KB"


@allure.feature("Component Cache")
@allure.story("Disk failures are tolerated")
@allure.severity(allure.severity_level.CRITICAL)
def test_unwritable_cache_dir_keeps_memory_tier(tmp_path: Path, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    cache = ComponentCache(blocker / "cache")

    with caplog.at_level(logging.WARNING):
        cache.set("key", "value")

    assert "Failed to write cache to disk" in caplog.text
    assert cache.get("key") == "value"
    assert cache.get_stats()["writes"] == 0
    assert cache.get_size()["disk_files"] == 0


@allure.feature("Component Cache")
@allure.story("Delete")
@allure.severity(allure.severity_level.MINOR)
def test_delete_removes_both_tiers(cache: ComponentCache):
    cache.set("key", "value")
    cache.delete("key")
    cache.delete("missing")
    assert cache.get("key") is None
    assert not cache.file_path("key").exists()


@allure.feature("Component Cache")
@allure.story("Warm and export")
@allure.severity(allure.severity_level.MINOR)
def test_warm_and_export(cache: ComponentCache):
    cache.warm([("a", "1"), ("b", "22")])
    exported = cache.export()
    assert [(item["key"], item["size"]) for item in exported["memory"]] == [("a", 1), ("b", 2)]
    assert len(exported["disk"]) == 2
    assert all(item["file"].endswith(".cache") for item in exported["disk"])
    assert exported["stats"]["writes"] == 2


@allure.feature("Component Cache")
@allure.story("Key hashing")
@allure.severity(allure.severity_level.MINOR)
def test_file_path_is_hashed(cache: ComponentCache):
    path = cache.file_path("../../etc/passwd")
    assert path.parent == cache.cache_dir
    assert len(path.stem) == 32


@allure.feature("Component Cache")
@allure.story("Size formatting")
@allure.severity(allure.severity_level.MINOR)
@pytest.mark.parametrize(
    "size,expected",
    [
        (0, "0.00 B"),
        (1023, "1023.00 B"),
        (2048, "2.00 KB"),
        (1024 * 1024 * 1.5, "1.50 MB"),
        (1024 ** 4, "1024.00 GB"),
    ],
)
def test_format_size(size, expected):
    assert format_size(size) == expected
