from __future__ import annotations

import threading
import time
from typing import Dict, Optional, Tuple


class MemoryCache:
    """In-process stand-in for the shared volatile store.

    Only correct for a single process; every operation runs under one lock so
    ``get_and_delete`` and ``increment`` keep their atomicity guarantees.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _now(self) -> float:
        return time.monotonic()

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._now():
            self._entries.pop(key, None)
            return None
        return entry

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._now() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._entries[key] = (str(value), expires_at)

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    async def delete(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            self._entries.pop(key, None)
            return 1 if entry else 0

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    async def increment(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                value, expires_at = 0, None
            else:
                value, expires_at = int(entry[0]), entry[1]
            value += 1
            # INCR keeps the existing TTL, matching Redis
            self._entries[key] = (str(value), expires_at)
            return value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            if ttl_seconds <= 0:
                self._entries.pop(key, None)
            else:
                self._entries[key] = (entry[0], self._now() + ttl_seconds)
            return True

    async def get_and_delete(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            self._entries.pop(key, None)
            return entry[0] if entry else None

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires; None when missing or persistent."""
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return entry[1] - self._now()

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
