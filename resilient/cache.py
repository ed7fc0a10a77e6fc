from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
import logging
import threading
from typing import Optional

from .clock import Clock, SystemClock
from .model import CacheEntry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    total_cost: int
    entry_count: int


class Cache(ABC):
    """
    An abstraction of a response cache.

    A response cache has a relatively narrow scope: to remember a response payload under a fingerprint such that it can
    be recalled later for a matching request. Deciding which responses are worth storing is left to the client.
    """

    @abstractmethod
    def lookup(self, key: str) -> Optional[bytes]:
        """
        Retrieve a cached payload.

        @param key
          The request fingerprint to look up.
        @return
          The payload, or `None` if it was never stored, has expired or has been evicted.
        """

    @abstractmethod
    def store(self, key: str, payload: bytes, ttl: float) -> None:
        """
        Add a payload to the cache, replacing any existing one for `key`.

        @param key
          The request fingerprint.
        @param payload
          The response payload. Its length is its cost.
        @param ttl
          How long, in seconds, the payload may be handed out.
        """

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """
        Remove the payload for `key`, if any.
        """

    @abstractmethod
    def invalidate_all(self) -> None:
        """
        Remove every payload.
        """

    @abstractmethod
    def stats(self) -> CacheStats:
        """
        The current total cost and number of entries.
        """

    def close(self):
        """
        Close any resources associated with the cache.
        """


class MemoryCache(Cache):
    """
    An in-memory LRU cache with hard expiry, bounded by total cost and optionally by entry count.

    All reads and writes are serialized by a single lock. Entries are immutable and are only ever swapped in or out
    whole, so a store racing an invalidate of the same key leaves the key either stored or absent.
    """

    def __init__(self, max_cost: int, clock: Optional[Clock] = None, max_entries: Optional[int] = None) -> None:
        """
        Initialize the memory cache.

        @param max_cost
          The total payload size, in bytes, the cache may hold after any store.
        @param clock
          The time source used for expiry.
        @param max_entries
          The number of entries the cache may hold after any store. `None` for no limit.
        """
        self.__max_cost = max_cost
        self.__max_entries = max_entries
        self.__clock = clock or SystemClock()
        self.__entries = OrderedDict()
        self.__total_cost = 0
        self.__lock = threading.Lock()

    @property
    def max_cost(self) -> int:
        return self.__max_cost

    @property
    def max_entries(self) -> Optional[int]:
        return self.__max_entries

    def lookup(self, key: str) -> Optional[bytes]:
        now = self.__clock.now()
        with self.__lock:
            entry = self.__entries.get(key)
            if entry is None:
                logger.debug('No cache entry for {}.'.format(key))
                return None
            if entry.is_expired(now):
                logger.info('Cache entry for {} expired. Removing it.'.format(key))
                self._remove(key)
                return None
            self.__entries.move_to_end(key)
            logger.debug('Cache hit for {}.'.format(key))
            return entry.payload

    def store(self, key: str, payload: bytes, ttl: float) -> None:
        if ttl <= 0:
            logger.info('Refusing to cache {}. A TTL of {} is already expired.'.format(key, ttl))
            return

        now = self.__clock.now()
        entry = CacheEntry(key=key, payload=bytes(payload), stored_at=now, ttl=ttl)
        with self.__lock:
            self._remove(key)
            self.__entries[key] = entry
            self.__total_cost += entry.cost
            logger.debug('Stored {} bytes under {}.'.format(entry.cost, key))
            self._evict(now)

    def invalidate(self, key: str) -> None:
        with self.__lock:
            if self._remove(key) is not None:
                logger.info('Invalidated cache entry {}.'.format(key))

    def invalidate_all(self) -> None:
        with self.__lock:
            count = len(self.__entries)
            self.__entries.clear()
            self.__total_cost = 0
        logger.info('Invalidated all {} cache entries.'.format(count))

    def stats(self) -> CacheStats:
        with self.__lock:
            return CacheStats(total_cost=self.__total_cost, entry_count=len(self.__entries))

    def close(self):
        self.invalidate_all()

    # region Helpers. The lock must be held.

    def _remove(self, key: str) -> Optional[CacheEntry]:
        entry = self.__entries.pop(key, None)
        if entry is not None:
            self.__total_cost -= entry.cost
        return entry

    def _over_budget(self) -> bool:
        if self.__total_cost > self.__max_cost:
            return True
        return self.__max_entries is not None and len(self.__entries) > self.__max_entries

    def _evict(self, now: float) -> None:
        if not self._over_budget():
            return

        expired = [key for key, entry in self.__entries.items() if entry.is_expired(now)]
        for key in expired:
            logger.info('Evicting expired cache entry {}.'.format(key))
            self._remove(key)

        while self._over_budget():
            key, entry = self.__entries.popitem(last=False)
            self.__total_cost -= entry.cost
            logger.info('Evicting least recently used cache entry {} ({} bytes).'.format(key, entry.cost))

    # endregion
