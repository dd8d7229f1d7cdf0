# core/watch.py

import threading
from typing import Generic, Iterator, Optional, Tuple, TypeVar

from simscan.core.errors import ChannelClosed

P = TypeVar('P')


class _Slot(Generic[P]):
    """Shared single-value cell behind a watch channel"""

    def __init__(self, initial: P):
        self.value = initial
        self.version = 0
        self.closed = False
        self.condition = threading.Condition()


class WatchSender(Generic[P]):
    """
    Writing half of a watch channel.

    ``send`` overwrites the current value and never waits for readers.
    """

    def __init__(self, slot: _Slot):
        self._slot = slot

    def send(self, value: P) -> None:
        slot = self._slot
        with slot.condition:
            if slot.closed:
                raise ChannelClosed("watch channel is closed")
            slot.value = value
            slot.version += 1
            slot.condition.notify_all()

    def close(self) -> None:
        """Mark the channel as finished and wake every waiting reader"""
        slot = self._slot
        with slot.condition:
            slot.closed = True
            slot.condition.notify_all()

    def subscribe(self) -> 'WatchReceiver[P]':
        return WatchReceiver(self._slot)

    @property
    def is_closed(self) -> bool:
        return self._slot.closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class WatchReceiver(Generic[P]):
    """
    Reading half of a watch channel.

    Each receiver remembers the last version it has seen, so clones
    advance independently of each other.
    """

    def __init__(self, slot: _Slot, seen: Optional[int] = None):
        self._slot = slot
        self._seen = slot.version if seen is None else seen

    def borrow(self) -> P:
        """Latest value, without marking it as seen"""
        with self._slot.condition:
            return self._slot.value

    def borrow_and_update(self) -> P:
        with self._slot.condition:
            self._seen = self._slot.version
            return self._slot.value

    def has_changed(self) -> bool:
        with self._slot.condition:
            return self._slot.version != self._seen

    def changed(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a value newer than the last seen one is available.

        Returns:
            True when a new value arrived, False when the channel closed
            with nothing unseen or the timeout expired.
        """
        slot = self._slot
        with slot.condition:
            slot.condition.wait_for(
                lambda: slot.version != self._seen or slot.closed,
                timeout=timeout
            )
            if slot.version != self._seen:
                self._seen = slot.version
                return True
            return False

    def clone(self) -> 'WatchReceiver[P]':
        with self._slot.condition:
            return WatchReceiver(self._slot, self._seen)

    @property
    def is_closed(self) -> bool:
        return self._slot.closed

    def __iter__(self) -> Iterator[P]:
        """Yield each newly observed value until the channel closes"""
        slot = self._slot
        while True:
            with slot.condition:
                slot.condition.wait_for(
                    lambda: slot.version != self._seen or slot.closed
                )
                if slot.version == self._seen:
                    return
                self._seen = slot.version
                value = slot.value
            yield value


class Watch:
    """Factory for a connected sender/receiver pair"""

    @staticmethod
    def channel(initial: P) -> Tuple[WatchSender[P], WatchReceiver[P]]:
        slot = _Slot(initial)
        return WatchSender(slot), WatchReceiver(slot)
