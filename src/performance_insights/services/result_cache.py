"""TTL memoization of analysis results."""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class ResultCache:
    """Keyed results that expire after a per-entry TTL.

    Invalidation is wholesale: any new record can change every derived result,
    so ``invalidate()`` drops all entries.
    """

    def __init__(self, default_ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._stats = {"hits": 0, "misses": 0, "invalidations": 0}

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry.value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def invalidate(self) -> None:
        """Drop every entry."""
        if self._entries:
            logger.debug("Result cache invalidated", entries=len(self._entries))
        self._entries.clear()
        self._stats["invalidations"] += 1

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "size": len(self._entries),
            "hit_rate": self._stats["hits"] / lookups if lookups else 0.0,
        }
