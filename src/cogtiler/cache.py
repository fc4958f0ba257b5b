# src/cogtiler/cache.py

"""
Bounded cache of rendered tiles keyed by (x, y, z).

A cache instance applies exactly one eviction policy:

- CAPACITY: at most `max_entries` tiles are kept; the oldest inserted tile
  is evicted first. Reads do not refresh an entry's position.
- TTL: a tile is dropped once `ttl` seconds have elapsed since it was
  inserted. Expired entries are ignored on read and swept on write.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np

log = logging.getLogger(__name__)

__all__ = [
    "CachePolicy",
    "CachedTile",
    "TileCache"
]

TileKey = Tuple[int, int, int]

class CachePolicy(Enum):
    CAPACITY = "capacity"
    TTL = "ttl"

@dataclass(frozen=True)
class CachedTile:
    image: np.ndarray
    inserted_at: float

class TileCache:
    def __init__(
        self,
        policy: CachePolicy = CachePolicy.CAPACITY,
        max_entries: int = 256,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.policy = CachePolicy(policy)
        if self.policy is CachePolicy.CAPACITY and max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        if self.policy is CachePolicy.TTL and (ttl is None or ttl <= 0):
            raise ValueError("A positive ttl is required for the TTL policy")

        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[TileKey, CachedTile]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, x: int, y: int, z: int) -> Optional[np.ndarray]:
        key = (x, y, z)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.image

    def put(self, x: int, y: int, z: int, image: np.ndarray) -> None:
        key = (x, y, z)
        with self._lock:
            now = self._clock()
            # re-insertion counts as a fresh insert
            self._entries.pop(key, None)
            self._entries[key] = CachedTile(image=image, inserted_at=now)

            if self.policy is CachePolicy.CAPACITY:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    log.debug(f"Evicted tile {evicted} (capacity {self.max_entries})")
            else:
                self._sweep(now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _is_expired(self, entry: CachedTile, now: float) -> bool:
        return self.policy is CachePolicy.TTL and now - entry.inserted_at > self.ttl

    def _sweep(self, now: float) -> None:
        # insertion order == age order, so stop at the first live entry
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if not self._is_expired(entry, now):
                break
            del self._entries[key]
            log.debug(f"Expired tile {key}")

    def __contains__(self, key: TileKey) -> bool:
        return self.get(*key) is not None

    def __len__(self) -> int:
        return len(self._entries)
