"""In-memory bounded delivery queue with drop-on-full enqueue."""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque

from ..domain.broadcast import Notification


class BoundedDeliveryQueue:
    """Thread-safe fixed-capacity buffer between fan-out and the delivery worker.

    Producers never wait: if the lock is busy or the buffer is full the item
    is refused and ``try_enqueue`` returns ``False``.
    """

    def __init__(self, capacity: int) -> None:
        """Initialise the buffer; ``capacity`` must be positive."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._items: Deque[Notification] = deque()
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def try_enqueue(self, item: Notification) -> bool:
        """Return ``True`` when ``item`` was accepted."""
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if len(self._items) >= self._capacity:
                return False
            self._items.append(item)
            return True
        finally:
            self._lock.release()

    def drain(self, max_items: int) -> list[Notification]:
        """Remove and return up to ``max_items`` queued notifications, oldest first."""
        with self._lock:
            count = min(max_items, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
