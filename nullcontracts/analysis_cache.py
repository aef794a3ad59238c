"""nullcontracts/analysis_cache.py – memoized flow analyses.

Building a flow tree is pure, so a cache miss simply rebuilds.  The only
shared mutable state in the whole engine lives here, behind one lock that
covers "look up, else build and insert".
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["AnalysisCache"]

V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    touched: float


class AnalysisCache(Generic[V]):
    """LRU cache whose entries also expire after a period without use.

    Parameters
    ----------
    retention_seconds:
        An entry not read for this long is dropped.
    max_entries:
        Least recently used entries are evicted beyond this count.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        retention_seconds: float = 20.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.retention_seconds = retention_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, _Entry[V]]" = OrderedDict()
        self.stats: Dict[str, int] = {"hits": 0, "misses": 0, "evictions": 0}

    def get_or_build(self, key: Hashable, build: Callable[[], V]) -> V:
        with self._lock:
            now = self._clock()
            self._expire(now)
            entry = self._entries.get(key)
            if entry is not None:
                entry.touched = now
                self._entries.move_to_end(key)
                self.stats["hits"] += 1
                return entry.value
            self.stats["misses"] += 1
            value = build()
            self._entries[key] = _Entry(value, now)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self.stats["evictions"] += 1
                logger.debug("evicted analysis for %r", evicted)
            return value

    def _expire(self, now: float) -> None:
        stale = [
            key for key, entry in self._entries.items()
            if now - entry.touched > self.retention_seconds
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("expired %d cached analyses", len(stale))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
