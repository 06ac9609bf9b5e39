"""TTLCache: in-process cache for resolved routes and bearer tokens.

Entries are keyed by stable identifiers (route name, auth descriptor id).
Concurrent invocations may race on a miss and store the same value twice;
the overwrite is idempotent, so no locking is done.
"""

import time
from collections.abc import Callable
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]

# Named expiry policy: entries live until evicted or the process exits.
NO_EXPIRY: float | None = None


class TTLCache(Generic[K, V]):
    """Map with an optional time-to-live per entry.

    Attributes:
        ttl_seconds: Lifetime of an entry measured from the time it was
            stored, or NO_EXPIRY to keep entries until evicted
    """

    def __init__(self, ttl_seconds: float | None = NO_EXPIRY, clock: Clock | None = None) -> None:
        """Initialize an empty cache.

        Args:
            ttl_seconds: Entry lifetime in seconds, or NO_EXPIRY
            clock: Monotonic time source (defaults to time.monotonic)

        Raises:
            ValueError: If ttl_seconds is not positive
        """
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        # Storage: {key: (stored_at, value)}
        self._entries: dict[K, tuple[float, V]] = {}

    def get(self, key: K) -> V | None:
        """Return the cached value, or None when absent or stale.

        Stale entries are dropped on access.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None

        return value

    def set(self, key: K, value: V) -> None:
        """Store a value, restarting its lifetime."""
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: K) -> bool:
        """Evict one entry.

        Returns:
            True if an entry was evicted
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Evict every entry."""
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)
