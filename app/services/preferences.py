import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from app.core.enums import Platform


class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, platform: Platform) -> None:
        ...


class InMemoryPreferenceStore:
    """Visitor-keyed platform preferences with a fixed time to live.

    Values are stored as plain strings so a stale or tampered entry is
    re-validated by the resolver on read. Entries are kept in write order,
    which with a single TTL is also expiry order: every write drops the
    expired head, then the oldest entries beyond ``max_items``.
    """

    def __init__(self, ttl: int, max_items: int = 50_000, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_items = max_items
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, platform: Platform) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = (str(platform), now + self.ttl)
        self._evict(now)

    def _evict(self, now: float) -> None:
        while self._entries:
            oldest = next(iter(self._entries))
            _, expires_at = self._entries[oldest]
            if expires_at > now and len(self._entries) <= self.max_items:
                break
            del self._entries[oldest]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self):
        return len(self._entries)
