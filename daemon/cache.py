# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
TTL cache for throttled upstream calls.

Passed into whatever needs it (upstream client, status collector) instead of
living as a module-level singleton, so tests can hand in a fresh one.

Design:
  - Simple dict {key: (value, expires_at)} + threading.Lock
  - Lazy population (cache on first miss)
  - Injectable clock for deterministic expiry in tests
  - Handful of keys per streamer, no size eviction needed
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

# Cache entry: (value, expires_at_monotonic)
CacheEntry = Tuple[Any, float]


class TTLCache:
    """
    Capability cache: get(key) / set(key, value, ttl).

    Thread-safe via threading.Lock. All operations are O(1).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value. Returns None on miss or expiry."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            if self._clock() > expires_at:
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value with TTL in seconds."""
        with self._lock:
            self._store[key] = (value, self._clock() + ttl)

    def stats(self) -> Dict[str, Any]:
        """Cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
            }


# ---------------------------------------------------------------------------
# Cache key constants and TTLs
# ---------------------------------------------------------------------------

class CacheKeys:
    """Standard cache keys. Per-streamer keys take the lowercased name."""
    LIVE_RUNS = "live_runs"

    @staticmethod
    def status(name: str) -> str:
        return f"status:{name.lower()}"

    @staticmethod
    def profile(name: str) -> str:
        return f"profile:{name.lower()}"


# TTLs in seconds
LIVE_RUNS_TTL = 2.0
STATUS_TTL = 5.0
PROFILE_TTL = 6 * 60 * 60.0
