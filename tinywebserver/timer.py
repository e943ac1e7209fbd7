"""Connection expiry timers kept in ascending order of deadline."""

from __future__ import annotations

import bisect
import time
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, Callable, Iterator, List, Optional


@dataclass(eq=False)
class ClientData:
    """Per-connection state a timer refers to."""

    address: Any = None
    sockfd: int = -1
    timer: Optional["UtilTimer"] = None


@dataclass(eq=False)
class UtilTimer:
    """A deadline and the callback to run once it passes."""

    expire: float = 0.0
    cb_func: Optional[Callable[[Optional[ClientData]], None]] = None
    user_data: Optional[ClientData] = None


_expire = attrgetter("expire")


class SortTimerList:
    """Timers sorted by ``expire``; timers with equal deadlines keep insertion order."""

    def __init__(self) -> None:
        self._timers: List[UtilTimer] = []

    def _index(self, timer: UtilTimer) -> int:
        for position, candidate in enumerate(self._timers):
            if candidate is timer:
                return position
        raise ValueError("timer is not in the list")

    def add_timer(self, timer: Optional[UtilTimer]) -> None:
        if timer is None:
            return
        position = bisect.bisect_right(self._timers, timer.expire, key=_expire)
        self._timers.insert(position, timer)

    def adjust_timer(self, timer: Optional[UtilTimer]) -> None:
        """Move ``timer`` back after its deadline has been extended."""
        if timer is None:
            return
        position = self._index(timer)
        following = position + 1
        if following == len(self._timers) or timer.expire < self._timers[following].expire:
            return
        del self._timers[position]
        new_position = bisect.bisect_right(
            self._timers, timer.expire, lo=position, key=_expire
        )
        self._timers.insert(new_position, timer)

    def del_timer(self, timer: Optional[UtilTimer]) -> None:
        if timer is None:
            return
        try:
            del self._timers[self._index(timer)]
        except ValueError:
            pass

    def tick(self, now: Optional[float] = None) -> None:
        """Run and drop every timer whose deadline is at or before ``now``."""
        current = time.time() if now is None else now
        while self._timers and current >= self._timers[0].expire:
            timer = self._timers.pop(0)
            if timer.cb_func is not None:
                timer.cb_func(timer.user_data)

    def __iter__(self) -> Iterator[UtilTimer]:
        return iter(list(self._timers))

    def __len__(self) -> int:
        return len(self._timers)