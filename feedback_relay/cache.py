"""LRU cache for summarization results."""
import hashlib
import time
from collections import OrderedDict
from typing import Any, Dict, NamedTuple, Optional

from config import config
from schemas import SummaryResult


class _Entry(NamedTuple):
    result: SummaryResult
    stored_at: float


class SummaryCache:
    """Summary/category results keyed by feedback content, with LRU eviction and a TTL.

    Only results parsed from a real reply are kept; fallbacks are recomputed
    so a later successful call can replace them. Re-analysis after issues are
    cleared therefore costs no provider calls for unchanged feedback.
    """

    def __init__(self, max_size: Optional[int] = None, ttl_seconds: Optional[int] = None):
        self.max_size = max_size or config.CACHE_MAX_SIZE
        self.ttl_seconds = ttl_seconds or config.CACHE_TTL_SECONDS
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key_for(title: str, body: str) -> str:
        return hashlib.sha256(f"{title}\n{body or ''}".encode()).hexdigest()

    def _expired(self, entry: _Entry) -> bool:
        return time.monotonic() - entry.stored_at > self.ttl_seconds

    def get(self, title: str, body: str) -> Optional[SummaryResult]:
        key = self.key_for(title, body)
        entry = self._entries.get(key)

        if entry is None or self._expired(entry):
            self._entries.pop(key, None)
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return entry.result.model_copy()

    def set(self, title: str, body: str, result: SummaryResult) -> None:
        if not result.parsed:
            return

        key = self.key_for(title, body)
        self._entries[key] = _Entry(result.model_copy(), time.monotonic())
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def get_stats(self) -> Dict[str, Any]:
        """Hit/miss counters and occupancy, as reported by /health."""
        lookups = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": len(self._entries),
            "max_size": self.max_size,
            "hit_rate": round(self.hits / lookups, 3) if lookups else 0
        }
