"""In-memory TTL cache for completed results.

Consulted before a job is submitted so a URL that was already analyzed
with the same options is answered without reprocessing.
"""

import hashlib
import json
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def make_key(url: str, options: Dict[str, Any]) -> str:
    """Stable cache key for a URL and the options that shape its result."""
    material = json.dumps({"url": url.strip(), "options": options}, sort_keys=True)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class ResultCache:
    """Thread-safe key/value store with per-entry expiry."""

    def __init__(self, default_ttl: float = 3600, max_entries: int = 1000):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict()
            self._entries[key] = (time.monotonic() + ttl, value)

    def _evict(self) -> None:
        """Drop expired entries, then the oldest if still full."""
        now = time.monotonic()
        for key in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Evicted cache entry {oldest}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
