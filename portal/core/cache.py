"""Explicit in-process caches with injectable clocks.

Both caches are process-local: nothing here is shared between workers or
survives a restart. Callers construct one instance per concern and hand it to
the component that owns the cached data, so tests can drive expiry with a
fake clock instead of sleeping.
"""

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from portal.models.base import utcnow

T = TypeVar("T")

MonotonicClock = Callable[[], float]
WallClock = Callable[[], datetime]

# Default TTL in seconds
DEFAULT_TTL = 300
DEFAULT_MAX_ENTRIES = 1024


class TTLCache(Generic[T]):
    """Key/value cache where each entry expires ``ttl`` seconds after it was stored.

    When ``max_entries`` is reached the oldest stored entry is evicted.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: MonotonicClock = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, T]] = OrderedDict()

    def get(self, key: Hashable) -> T | None:
        """Return cached value if present and not expired, else None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            self._entries.pop(key, None)
            return None
        return value

    def put(self, key: Hashable, value: T) -> None:
        """Store a value, evicting the oldest entry if the cache is full."""
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable) -> None:
        """Remove a specific cache entry."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cached entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class TokenSlot(Generic[T]):
    """Single-value cache for a credential with an absolute expiry.

    A value is served only while more than ``min_remaining`` is left before
    its expiry, as seen by the injected wall clock.
    """

    def __init__(self, clock: WallClock = utcnow) -> None:
        self._clock = clock
        self._value: T | None = None
        self._expires_at: datetime | None = None

    def get(self, min_remaining: timedelta) -> T | None:
        if self._value is None or self._expires_at is None:
            return None
        if self._expires_at - self._clock() <= min_remaining:
            return None
        return self._value

    def put(self, value: T, expires_at: datetime) -> None:
        self._value = value
        self._expires_at = expires_at

    def clear(self) -> None:
        self._value = None
        self._expires_at = None

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    def peek(self) -> Any:
        """Return the stored value regardless of expiry (diagnostics only)."""
        return self._value
