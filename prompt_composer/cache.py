"""
Component cache module for caching composed prompts.

Two tiers: an in-memory LRU map and one file per key on disk. The cache
is an optimization only, so disk failures are logged and never raised.
"""

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from .constants import (
    CACHE_FILE_SUFFIX,
    DEFAULT_CACHE_DIR,
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_CACHE_MAX_ITEMS,
)


logger = logging.getLogger(__name__)


_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(size: float) -> str:
    """Format a byte count, e.g. ``format_size(2048) == '2.00 KB'``."""
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {_SIZE_UNITS[unit]}"


@dataclass
class CacheEntry:
    """A value held in the memory tier."""
    value: str
    timestamp: float


class ComponentCache:
    """
    Two-tier cache for composed prompts.

    Memory entries are kept in least-recently-used order and evicted once
    ``max_items`` is exceeded. Disk entries live in ``<md5(key)>.cache``
    files and expire by modification time. Entries older than ``max_age``
    seconds are treated as absent in both tiers.
    """

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        max_items: int = DEFAULT_CACHE_MAX_ITEMS,
        max_age: float = DEFAULT_CACHE_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            cache_dir: Directory for disk entries. Defaults to
                ``.cache/prompts`` under the working directory.
            max_items: Memory tier capacity.
            max_age: Entry lifetime in seconds.
            clock: Time source returning epoch seconds.
        """
        self._cache_dir = Path(cache_dir) if cache_dir is not None else DEFAULT_CACHE_DIR
        self._max_items = max_items
        self._max_age = max_age
        self._clock = clock
        self._memory: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {"hits": 0, "misses": 0, "writes": 0, "evictions": 0}

    @property
    def cache_dir(self) -> Path:
        """Get the disk tier directory."""
        return self._cache_dir

    @property
    def max_age(self) -> float:
        return self._max_age

    def file_path(self, key: str) -> Path:
        """Disk location for a key; the key is hashed to a safe file name."""
        digest = hashlib.md5(key.encode("utf-8"), usedforsecurity=False).hexdigest()
        return self._cache_dir / f"{digest}{CACHE_FILE_SUFFIX}"

    def _is_fresh(self, timestamp: float) -> bool:
        return self._clock() - timestamp < self._max_age

    def get(self, key: str) -> Optional[str]:
        """
        Get a cached value.

        Args:
            key: Cache key.

        Returns:
            The cached value, or None on a miss or expired entry.
        """
        entry = self._memory.get(key)
        if entry is not None:
            if self._is_fresh(entry.timestamp):
                self._memory.move_to_end(key)
                self._stats["hits"] += 1
                return entry.value
            del self._memory[key]

        path = self.file_path(key)
        try:
            if path.is_file():
                if self._is_fresh(path.stat().st_mtime):
                    with open(path, "r", encoding="utf-8", newline="") as f:
                        value = f.read()
                    self._remember(key, value)
                    self._stats["hits"] += 1
                    return value
                path.unlink()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read cache entry {path}: {e}")

        self._stats["misses"] += 1
        return None

    def set(self, key: str, value: str) -> None:
        """
        Store a value in both tiers.

        Args:
            key: Cache key.
            value: Value to cache.
        """
        self._remember(key, value)

        path = self.file_path(key)
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(value, encoding="utf-8", newline="")
            self._stats["writes"] += 1
        except (OSError, UnicodeEncodeError) as e:
            logger.warning(f"Failed to write cache to disk: {e}")

    def _remember(self, key: str, value: str) -> None:
        self._memory.pop(key, None)
        self._memory[key] = CacheEntry(value=value, timestamp=self._clock())
        while len(self._memory) > self._max_items:
            self._memory.popitem(last=False)
            self._stats["evictions"] += 1

    def delete(self, key: str) -> None:
        """Remove a key from both tiers."""
        self._memory.pop(key, None)
        path = self.file_path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete cache entry {path}: {e}")

    def _disk_files(self) -> list[Path]:
        if not self._cache_dir.is_dir():
            return []
        try:
            return sorted(
                path for path in self._cache_dir.iterdir()
                if path.is_file() and path.suffix == CACHE_FILE_SUFFIX
            )
        except OSError as e:
            logger.warning(f"Failed to list cache directory {self._cache_dir}: {e}")
            return []

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        self._memory.clear()
        for path in self._disk_files():
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"Failed to delete cache entry {path}: {e}")
        self._stats = self._empty_stats()

    def prune(self) -> int:
        """
        Remove expired entries from both tiers.

        Returns:
            Number of entries removed.
        """
        pruned = 0
        for key in [k for k, entry in self._memory.items() if not self._is_fresh(entry.timestamp)]:
            del self._memory[key]
            pruned += 1

        for path in self._disk_files():
            try:
                if not self._is_fresh(path.stat().st_mtime):
                    path.unlink()
                    pruned += 1
            except OSError as e:
                logger.warning(f"Failed to prune cache entry {path}: {e}")
        return pruned

    def get_stats(self) -> dict[str, Any]:
        """
        Get hit/miss counters.

        Returns:
            Counters plus ``hit_rate`` (e.g. ``"66.67%"``) and
            ``memory_items``.
        """
        lookups = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / lookups * 100 if lookups else 0.0
        return {
            **self._stats,
            "hit_rate": f"{hit_rate:.2f}%",
            "memory_items": len(self._memory),
        }

    def get_size(self) -> dict[str, Any]:
        """Item counts and human-readable sizes of both tiers."""
        disk_size = 0
        disk_files = 0
        for path in self._disk_files():
            try:
                disk_size += path.stat().st_size
                disk_files += 1
            except OSError:
                continue

        memory_size = sum(len(entry.value.encode("utf-8")) for entry in self._memory.values())
        return {
            "memory_items": len(self._memory),
            "memory_size": format_size(memory_size),
            "disk_files": disk_files,
            "disk_size": format_size(disk_size),
            "total_size": format_size(memory_size + disk_size),
        }

    def warm(self, items: Iterable[tuple[str, str]]) -> None:
        """Preload ``(key, value)`` pairs."""
        for key, value in items:
            self.set(key, value)

    def export(self) -> dict[str, Any]:
        """Describe the cache contents without the cached values."""
        memory = [
            {"key": key, "timestamp": entry.timestamp, "size": len(entry.value)}
            for key, entry in self._memory.items()
        ]
        disk = []
        for path in self._disk_files():
            try:
                stat = path.stat()
            except OSError:
                continue
            disk.append({
                "file": path.name,
                "size": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
            })
        return {
            "memory": memory,
            "disk": disk,
            "stats": self.get_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
