"""A bounded, thread-safe FIFO queue with a blocking pop."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Deque


class BlockQueue:
    """Bounded FIFO queue; ``push`` never blocks, ``pop`` waits for an item."""

    def __init__(self, max_size: int = 1000) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._items: Deque[Any] = deque()
        self._cond = threading.Condition()

    def clear(self) -> None:
        """Drop every queued item."""
        with self._cond:
            self._items.clear()

    def full(self) -> bool:
        with self._cond:
            return len(self._items) >= self._max_size

    def empty(self) -> bool:
        with self._cond:
            return not self._items

    def front(self) -> Any:
        """Return the oldest item without removing it."""
        with self._cond:
            if not self._items:
                raise IndexError("queue is empty")
            return self._items[0]

    def back(self) -> Any:
        """Return the newest item without removing it."""
        with self._cond:
            if not self._items:
                raise IndexError("queue is empty")
            return self._items[-1]

    def size(self) -> int:
        with self._cond:
            return len(self._items)

    def max_size(self) -> int:
        return self._max_size

    def push(self, item: Any) -> bool:
        """Append ``item``; return False if the queue is already full."""
        with self._cond:
            if len(self._items) >= self._max_size:
                self._cond.notify_all()
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def pop(self, timeout: float | None = None) -> Any:
        """Remove and return the oldest item, waiting for one to arrive.

        Raises TimeoutError if ``timeout`` seconds pass with the queue empty.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("no item arrived before the timeout")
                self._cond.wait(remaining)
            return self._items.popleft()