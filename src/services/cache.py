"""In-memory geocoding cache: LRU order, a byte ceiling and per-entry expiry.

``OpenDataClient`` keeps Nominatim results here.  A city name resolves to the
same coordinates on every lookup and Nominatim's usage policy asks clients
not to repeat identical queries, so one process-wide cache is enough.

Entries are sized by their JSON encoding and the least recently read entry
is dropped first once the ceiling is reached.  Entries older than
``ttl_seconds`` read as missing.  Nothing survives a restart.

>>> cache = LRUCache(max_bytes=1024 * 1024)
>>> cache.put("geocode:paris", {"lat": 48.85, "lon": 2.35})
>>> cache.get("geocode:paris")
{'lat': 48.85, 'lon': 2.35}
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Geocoding entries are ~200 bytes, so 1 MB holds a few thousand cities
DEFAULT_MAX_BYTES = 1024 * 1024
DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(slots=True)
class _Entry:
    value: Any
    size: int
    stored_at: float


def encoded_size(value: Any) -> int:
    """Byte length of *value* as JSON, or of its ``str()`` when not serialisable."""
    try:
        text = json.dumps(value, default=str)
    except (TypeError, ValueError, OverflowError):
        text = str(value)
    return len(text.encode("utf-8"))


class LRUCache:
    """Least-recently-used cache bounded by total encoded size."""

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        ttl_seconds: float | None = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_bytes = max_bytes
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._total = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the live value for *key* and mark it most recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                self._drop(key)
                logger.debug("Cache: %s expired", key)
                return None
            self._entries.move_to_end(key)
            return entry.value

    def put(self, key: str, value: Any) -> None:
        size = encoded_size(value)
        if size > self._max_bytes:
            logger.debug("Cache: not storing %s (%d bytes over ceiling %d)", key, size, self._max_bytes)
            return

        with self._lock:
            self._drop(key)
            while self._entries and self._total + size > self._max_bytes:
                oldest = next(iter(self._entries))
                logger.debug("Cache: evicting %s", oldest)
                self._drop(oldest)
            self._entries[key] = _Entry(value, size, self._clock())
            self._total += size

    def invalidate(self, key: str) -> bool:
        """Forget *key*; ``True`` when something was removed."""
        with self._lock:
            return self._drop(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total = 0

    @property
    def current_bytes(self) -> int:
        return self._total

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def has(self, key: str) -> bool:
        """Presence check that neither promotes nor expires the entry."""
        return key in self._entries

    # ── Internal ─────────────────────────────────────────────────────

    def _expired(self, entry: _Entry) -> bool:
        return self._ttl is not None and self._clock() - entry.stored_at >= self._ttl

    def _drop(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._total -= entry.size
        return True
