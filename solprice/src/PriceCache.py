"""PriceCache: Time-boxed quote cache with lazy expiry.

The oracle stores the aggregated quote under AGGREGATE_KEY and the quotes
of the sources that contributed to it under their source names. Entries
expire ``cache_time`` seconds after they were written. Expired entries are
removed when they are read; there is no background sweep.
"""

import logging
import time
from dataclasses import dataclass

from .Quote import Quote

logger = logging.getLogger(__name__)

AGGREGATE_KEY = "aggregated"


@dataclass(frozen=True)
class CacheEntry:
    """A cached quote and its expiry time.

    :ivar quote: The cached quote.
    :ivar expires_at: Unix timestamp after which the entry is stale.
    """

    quote: Quote
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if the entry is stale at ``now``."""
        return self.expires_at < now


class PriceCache:
    """Keyed quote cache with a fixed time-to-live.

    :ivar cache_time: Seconds an entry stays valid.
    """

    def __init__(self, cache_time: float) -> None:
        """Initialize the cache.

        :param cache_time: Seconds an entry stays valid.
        :raises ValueError: If cache_time is not positive.
        """
        if cache_time <= 0:
            raise ValueError("cache_time must be positive")
        self.cache_time = cache_time
        self._entries: dict[str, CacheEntry] = {}

    def set(self, key: str, quote: Quote) -> None:
        """Store a quote, replacing any previous entry for the key.

        :param key: Cache key (AGGREGATE_KEY or a source name).
        :param quote: Quote to store.
        """
        self._entries[key] = CacheEntry(quote=quote, expires_at=time.time() + self.cache_time)

    def get(self, key: str) -> Quote | None:
        """Get a fresh quote for a key.

        :param key: Cache key.
        :returns: The quote, or None if missing or stale (stale entries are dropped).
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(time.time()):
            del self._entries[key]
            logger.debug(f"Cache entry {key!r} expired")
            return None
        return entry.quote

    def get_all(self) -> list[Quote]:
        """Get all fresh quotes, dropping stale entries.

        :returns: Quotes of the valid entries in insertion order.
        """
        now = time.time()
        valid: list[Quote] = []
        for key, entry in list(self._entries.items()):
            if entry.is_expired(now):
                del self._entries[key]
            else:
                valid.append(entry.quote)
        return valid

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def size(self) -> int:
        """Number of stored entries, including not yet collected stale ones."""
        return len(self._entries)
