"""In-memory key/value cache with per-entry expiry."""

import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600.0


class TTLCache:
    """A plain dict-backed cache where every entry expires after a TTL.

    Values are stored as ``(value, expires_at)`` pairs.  Expired entries are
    dropped lazily on read and in bulk by ``purge_expired()``.  There are no
    cross-key transactions; concurrent writes to the same key resolve as
    last-write-wins.

    Args:
        default_ttl: Lifetime in seconds applied when ``set()`` is called
            without an explicit *ttl*.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for *key*, or *default* on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key*, replacing any previous entry."""
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = (value, self._clock() + lifetime)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)


_MISSING = object()
