# core/cache.py

import logging
from typing import Dict, Generic, Hashable, NamedTuple, Optional, TypeVar

from simscan.core.actor import Actor
from simscan.core.errors import CacheUnavailable

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
V = TypeVar('V')


class Get(NamedTuple):
    key: object


class Set(NamedTuple):
    key: object
    value: object


class Size(NamedTuple):
    pass


class Cache(Actor, Generic[K, V]):
    """
    Memoization store owned by a single actor thread.

    Callers never touch the map; ``get`` and ``set`` are turned into
    messages that the actor applies one at a time. Entries are never
    evicted, so the map lives as long as the process (or until
    ``close``). Values are handed out as-is and must be treated as
    immutable.
    """

    unavailable_error = CacheUnavailable

    def __init__(self, name: str = "hash-cache"):
        self._data: Dict[K, V] = {}
        super().__init__(name)

    def handle(self, message):
        if isinstance(message, Get):
            return self._data.get(message.key)
        if isinstance(message, Set):
            self._data[message.key] = message.value
            return None
        if isinstance(message, Size):
            return len(self._data)
        raise TypeError(f"unsupported cache message {message!r}")

    def on_stop(self):
        logger.debug("%s stopped with %d entries", self.name, len(self._data))

    def get(self, key: K) -> Optional[V]:
        """
        Look up ``key``, blocking until the actor answers.

        Must not be called from the actor thread itself.

        Returns:
            The stored value, or None when absent

        Raises:
            CacheUnavailable: if the actor thread has stopped
        """
        return self.ask(Get(key))

    def set(self, key: K, value: V) -> None:
        """Upsert without waiting for acknowledgement; last write wins"""
        self.tell(Set(key, value))

    def __len__(self) -> int:
        return self.ask(Size())

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop the actor; writes queued before this call are still applied"""
        self.stop(timeout)
