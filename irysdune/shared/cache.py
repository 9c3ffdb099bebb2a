#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
In-process TTL cache for aggregated series.

Entries expire lazily: `get` evicts anything older than its ttl, so a stale
value is never returned. Values are deep-copied in and out so callers never
share an entry by reference. Single process, best effort, no persistence.
"""
from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from .logging_setup import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
# expired entries are swept on every Nth set
PURGE_EVERY_SETS = 64


@dataclass
class CacheEntry:
    value: Any
    stored_at_ms: int
    ttl_ms: int

    def expired(self, now_ms: int) -> bool:
        return now_ms - self.stored_at_ms > self.ttl_ms


def make_cache_key(operation: str, params: Mapping[str, Any]) -> str:
    """
    Build a cache key from an operation name and its parameters.

    Keys are sorted so logically identical queries hash identically regardless
    of dict order. Sequence values are joined with ',' (callers sort them when
    order is not meaningful).

    Example:
        >>> make_cache_key("onchain-query", {"network": "mainnet", "address": "0xabc"})
        'onchain-query:address:0xabc|network:mainnet'
    """
    parts = []
    for key in sorted(params):
        value = params[key]
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        parts.append(f"{key}:{value}")
    return f"{operation}:{'|'.join(parts)}"


class TTLCache:
    """Key/value store with per-entry expiry"""

    def __init__(self, default_ttl: float = DEFAULT_TTL_SECONDS, clock: Optional[Callable[[], float]] = None, metrics: Optional[Any] = None) -> None:
        """
        Args:
            default_ttl: Default time-to-live in seconds
            clock: Epoch-seconds clock (injectable for tests)
            metrics: Optional AggregatorMetrics receiving hit/miss counts
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = default_ttl
        self._clock = clock or time.time
        self._metrics = metrics
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sets = 0

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expired(self._now_ms()):
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                value = None
            else:
                self._hits += 1
                value = copy.deepcopy(entry.value)
        if self._metrics is not None:
            self._metrics.record_cache(hit=value is not None)
        if value is not None:
            logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl_s = self.default_ttl if ttl is None else ttl
        if ttl_s <= 0:
            raise ValueError("ttl must be positive")
        now_ms = self._now_ms()
        entry = CacheEntry(value=copy.deepcopy(value), stored_at_ms=now_ms, ttl_ms=int(ttl_s * 1000))
        with self._lock:
            self._entries[key] = entry
            self._sets += 1
            if self._sets % PURGE_EVERY_SETS == 0:
                self._drop_expired(now_ms)
        logger.debug(f"Cache set: {key} (ttl={ttl_s:g}s)")

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._drop_expired(self._now_ms())

    def _drop_expired(self, now_ms: int) -> int:
        stale = [k for k, e in self._entries.items() if e.expired(now_ms)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.expired(self._now_ms())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
