"""In-process TTL cache for rendered artifacts.

Entries expire `ttl` seconds after insertion. Expiry is checked on every
read; `sweep()` (or the `run_sweeper` coroutine) purges whatever nobody read.
With `max_entries` set, inserting a new key into a full cache evicts the
oldest insertion first.
"""
from __future__ import annotations

import asyncio
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from loguru import logger

from holder_graph.core.config import CacheSettings
from holder_graph.core.custom_types import GeneratedArtifact


@dataclass
class CachedArtifact:
    key: str
    artifact: GeneratedArtifact
    inserted_at: float
    ttl: float

    @property
    def payload(self) -> bytes:
        return self.artifact.buffer

    @property
    def mime_type(self) -> str:
        return self.artifact.mime_type

    def expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class ArtifactCache:
    def __init__(self, settings: CacheSettings | None = None, clock: Callable[[], float] = time.monotonic):
        self.settings = settings or CacheSettings()
        self._clock = clock
        self._entries: "OrderedDict[str, CachedArtifact]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[CachedArtifact]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def set(self, key: str, artifact: GeneratedArtifact, ttl: Optional[float] = None) -> CachedArtifact:
        entry = CachedArtifact(
            key=key,
            artifact=artifact,
            inserted_at=self._clock(),
            ttl=self.settings.ttl_sec if ttl is None else ttl,
        )
        with self._lock:
            self._entries.pop(key, None)
            limit = self.settings.max_entries
            while limit is not None and len(self._entries) >= limit:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"[Cache] evicted {evicted} (max_entries={limit})")
            self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expired(now)]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug(f"[Cache] swept {len(stale)} expired artifacts")
        return len(stale)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'entries': len(self._entries),
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def run_sweeper(self, stop: Optional[asyncio.Event] = None) -> None:
        """Sweep every `check_period_sec` until `stop` is set (or the task is cancelled)."""
        stop = stop or asyncio.Event()
        period = self.settings.check_period_sec
        logger.info(f"[Cache] sweeper started, period={period}s")
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=period)
            except asyncio.TimeoutError:
                self.sweep()
        logger.info("[Cache] sweeper stopped")


__all__ = ["CachedArtifact", "ArtifactCache"]
