"""
Directory listing cache for the filesystem explorer engine.

Memoizes recent listings so repeated navigation (up, home, breadcrumbs) does
not hit the disk again. Entries expire after a TTL, can be invalidated
explicitly, and the least recently used listing is evicted once the cache is
full.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional

from ..models.entry import DirectoryListing, normalize_path
from .lister import DirectoryLister


logger = logging.getLogger(__name__)


class DirectoryCache:
    """
    TTL + LRU cache in front of a ``DirectoryLister``.

    The cache lock is never held while the lister reads the disk, so a slow
    listing does not block hits on other directories. Listing errors are not
    cached.
    """

    def __init__(self, lister: Optional[DirectoryLister] = None, ttl_seconds: float = 30.0,
                 max_entries: int = 256, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            lister: Lister used on a miss
            ttl_seconds: Age after which a cached listing is refreshed
            max_entries: Number of listings kept before LRU eviction
            clock: Monotonic time source
        """
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.lister = lister or DirectoryLister()
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._listings: "OrderedDict[str, DirectoryListing]" = OrderedDict()
        self._stored_at: Dict[str, float] = {}
        self._stats = {'hits': 0, 'misses': 0, 'evictions': 0, 'expired': 0}
        # Bumped by invalidate(); a read that started before it is not stored.
        self._generation = 0

    def get(self, path: str) -> DirectoryListing:
        """
        Return the listing of ``path``, from cache when fresh.

        Raises:
            DirectoryError: If the directory cannot be listed on a miss
        """
        key = normalize_path(path)
        now = self._clock()
        with self._lock:
            listing = self._listings.get(key)
            if listing is not None:
                if now - self._stored_at[key] < self.ttl_seconds:
                    self._listings.move_to_end(key)
                    self._stats['hits'] += 1
                    return listing
                self._drop(key)
                self._stats['expired'] += 1
            self._stats['misses'] += 1
            generation = self._generation

        listing = self.lister.list(key)
        self._store(key, listing, generation)
        return listing

    def _store(self, key: str, listing: DirectoryListing, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Not caching {key}: invalidated while it was being read")
                return
            self._listings[key] = listing
            self._listings.move_to_end(key)
            self._stored_at[key] = self._clock()
            while len(self._listings) > self.max_entries:
                evicted, _ = self._listings.popitem(last=False)
                del self._stored_at[evicted]
                self._stats['evictions'] += 1
                logger.debug(f"Evicted cached listing {evicted}")

    def _drop(self, key: str) -> None:
        self._listings.pop(key, None)
        self._stored_at.pop(key, None)

    def invalidate(self, path: Optional[str] = None) -> None:
        """
        Forget cached listings.

        Args:
            path: Directory to forget, or None to clear the whole cache
        """
        with self._lock:
            self._generation += 1
            if path is None:
                self._listings.clear()
                self._stored_at.clear()
            else:
                self._drop(normalize_path(path))

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return normalize_path(path) in self._listings

    def __len__(self) -> int:
        with self._lock:
            return len(self._listings)

    def stats(self) -> Dict[str, int]:
        """Get hit/miss/eviction counters and the current size."""
        with self._lock:
            data = dict(self._stats)
            data['size'] = len(self._listings)
        return data
