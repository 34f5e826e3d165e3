"""Capacity-bounded map with least-recently-used eviction."""
import logging
import threading
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class LRUCache(Generic[V]):
    """Map keyed by document identity that forgets the least recently used entry.

    ``get`` and ``set`` count as uses; ``peek`` and ``in`` do not.
    ``on_evict`` is called with each key dropped for capacity, after the
    cache lock is released.
    """

    def __init__(self, capacity: int = 10, on_evict: Optional[Callable[[Hashable], None]] = None):
        if capacity < 1:
            raise ValueError(f"LRU capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.on_evict = on_evict
        self._entries: "OrderedDict[Hashable, V]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def peek(self, key: Hashable) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: Hashable, value: V) -> None:
        evicted = []
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                evicted.append(self._entries.popitem(last=False)[0])
                logger.debug(f"Evicted resolution cache entry for {evicted[-1]!r}")

        if self.on_evict is not None:
            for old_key in evicted:
                self.on_evict(old_key)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self):
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self.keys())
