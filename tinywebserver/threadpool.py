"""Worker threads that process queued connection requests."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Deque, List, Optional, Tuple

from .log import log_error


class ThreadPool:
    """A fixed set of worker threads fed from a bounded request queue.

    With ``actor_model`` 1 (reactor) workers also do the socket I/O: ``state``
    0 reads then processes, 1 writes. Otherwise (proactor) the caller has
    already read and workers only process.
    """

    def __init__(
        self,
        actor_model: int,
        conn_pool: Any = None,
        thread_number: int = 8,
        max_requests: int = 10000,
    ) -> None:
        if thread_number <= 0 or max_requests <= 0:
            raise ValueError("thread_number and max_requests must be positive")
        self.actor_model = actor_model
        self._conn_pool = conn_pool
        self._max_requests = max_requests
        self._queue: Deque[Tuple[Any, int]] = deque()
        self._lock = threading.Lock()
        self._pending = threading.Semaphore(0)
        self._stopped = False
        self._threads: List[threading.Thread] = [
            threading.Thread(target=self._run, name=f"worker-{i}", daemon=True)
            for i in range(thread_number)
        ]
        for thread in self._threads:
            thread.start()

    def append(self, request: Any, state: int = 0) -> bool:
        """Queue ``request``; False if the queue is full."""
        with self._lock:
            if self._stopped:
                raise RuntimeError("thread pool is shut down")
            if len(self._queue) >= self._max_requests:
                return False
            self._queue.append((request, state))
        self._pending.release()
        return True

    def shutdown(self) -> None:
        """Stop the workers and wait for them; queued requests are dropped."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        for _ in self._threads:
            self._pending.release()
        for thread in self._threads:
            thread.join()

    def _run(self) -> None:
        while True:
            self._pending.acquire()
            with self._lock:
                if self._stopped:
                    return
                if not self._queue:
                    continue
                request, state = self._queue.popleft()
            if request is None:
                continue
            try:
                self._handle(request, state)
            except Exception as exc:
                log_error(f"worker failed: {exc!r}")

    def _handle(self, request: Any, state: int) -> None:
        if self.actor_model != 1:
            self._process(request)
            return
        request.state = state
        if state == 0:
            if request.read_once():
                self._process(request)
            else:
                request.timer_flag = 1
        elif not request.write():
            request.timer_flag = 1
        request.improv = 1

    def _process(self, request: Any) -> None:
        if self._conn_pool is None:
            request.mysql = None
            request.process()
            return
        with self._conn_pool.connection() as con:
            request.mysql = con
            try:
                request.process()
            finally:
                request.mysql = None