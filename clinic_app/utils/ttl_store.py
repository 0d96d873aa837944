# /clinic_app/utils/ttl_store.py
import threading
import time
from collections import namedtuple

from cachetools import TLRUCache

DEFAULT_MAXSIZE = 10000

_Entry = namedtuple('_Entry', 'value ttl_seconds')


def _time_to_use(key, entry, now):
    return now + entry.ttl_seconds


class TTLStore:
    """
    Process-wide keyed store whose entries expire after a time-to-live.

    Callers depend on this interface only, so the in-memory implementation can
    be replaced by a shared backend once more than one worker process serves
    requests.
    """

    def set(self, key, value, ttl_seconds):
        raise NotImplementedError

    def get(self, key):
        """Returns the stored value, or None if the key is missing or expired."""
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def purge_expired(self):
        raise NotImplementedError


class InMemoryTTLStore(TTLStore):
    """
    Bounded per-entry TTL cache guarded by a lock.

    Once ``maxsize`` live entries are held, the least recently used one is
    evicted to make room.
    """

    def __init__(self, maxsize=DEFAULT_MAXSIZE, clock=time.monotonic):
        self.maxsize = maxsize
        self._cache = TLRUCache(maxsize=maxsize, ttu=_time_to_use, timer=clock)
        self._lock = threading.Lock()

    def set(self, key, value, ttl_seconds):
        with self._lock:
            self._cache[key] = _Entry(value, ttl_seconds)

    def get(self, key):
        with self._lock:
            entry = self._cache.get(key)
            return entry.value if entry is not None else None

    def delete(self, key):
        with self._lock:
            self._cache.pop(key, None)

    def purge_expired(self):
        """Drops expired entries and returns how many were removed."""
        with self._lock:
            return len(self._cache.expire())

    def __len__(self):
        with self._lock:
            self._cache.expire()
            return len(self._cache)
