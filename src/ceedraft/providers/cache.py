"""Injected LRU + TTL caches shared across requests.

Two caches are built on ``LruTtlCache``:
- ``AdapterCache``: adapter instances keyed by ``(provider, model)``.
- ``CachingValidator``: validation results keyed by graph content hash.

Reads return a snapshot (a deep copy for mutable values) and writes are
last-writer-wins per key. Entries expire ``ttl_seconds`` after they were
written; the least recently used entry is evicted when ``max_size`` is
reached. ``clear()`` resets a cache for test isolation.
"""

from __future__ import annotations

import copy
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from ceedraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

    from ceedraft.graph.validation_types import ValidationResult, Validator
    from ceedraft.models.graph import Graph
    from ceedraft.pipeline.config import CacheConfig
    from ceedraft.providers.base import DraftAdapter

log = get_logger(__name__)

K = TypeVar("K", bound="Hashable")
V = TypeVar("V")

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_SECONDS = 3600.0


@dataclass
class CacheStats:
    """Hit/miss counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0


class LruTtlCache(Generic[K, V]):
    """Bounded cache with least-recently-used eviction and per-entry TTL.

    Args:
        max_size: Maximum live entries.
        ttl_seconds: Entry lifetime.
        clock: Monotonic clock, injectable for tests.
        snapshot: If True, values are deep-copied on read and write.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        snapshot: bool = True,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot = snapshot
        self._entries: OrderedDict[K, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def _copy(self, value: V) -> V:
        return copy.deepcopy(value) if self._snapshot else value

    def get(self, key: K) -> V | None:
        """Return a snapshot of the cached value, or None if absent/expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None
            written_at, value = entry
            if self._clock() - written_at >= self.ttl_seconds:
                del self._entries[key]
                self.stats.expirations += 1
                self.stats.misses += 1
                return None
            self._entries.move_to_end(key)
            self.stats.hits += 1
            return self._copy(value)

    def set(self, key: K, value: V) -> None:
        """Store ``value``; the previous value for ``key`` is replaced."""
        with self._lock:
            self._entries[key] = (self._clock(), self._copy(value))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self.stats.evictions += 1

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class AdapterCache:
    """Adapter instances keyed by ``(provider, model)``.

    Instances are shared, never copied.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: LruTtlCache[tuple[str, str], DraftAdapter] = LruTtlCache(
            max_size, ttl_seconds, clock=clock, snapshot=False
        )

    @classmethod
    def from_config(cls, config: CacheConfig) -> AdapterCache:
        return cls(config.max_size, config.ttl_seconds)

    def get_or_create(
        self,
        provider: str,
        model: str,
        factory: Callable[[str, str], DraftAdapter],
    ) -> DraftAdapter:
        """Return the cached adapter or build, cache and return a new one."""
        key = (provider, model)
        adapter = self._cache.get(key)
        if adapter is None:
            adapter = factory(provider, model)
            self._cache.set(key, adapter)
            log.debug("adapter_cached", provider=provider, model=model)
        return adapter

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class CachingValidator:
    """Validator wrapper memoising results by graph content hash."""

    def __init__(
        self,
        validator: Validator,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.validator = validator
        self._cache: LruTtlCache[str, ValidationResult] = LruTtlCache(
            max_size, ttl_seconds, clock=clock
        )

    @property
    def stats(self) -> CacheStats:
        return self._cache.stats

    def validate(self, graph: Graph) -> ValidationResult:
        key = graph.content_hash()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = self.validator.validate(graph)
        self._cache.set(key, result)
        return result

    def clear(self) -> None:
        self._cache.clear()
