"""File logger with daily and line-count rotation and optional async writing."""

from __future__ import annotations

import threading
from datetime import datetime
from enum import IntEnum
from typing import Callable, Optional, TextIO

from .blockqueue import BlockQueue


class Level(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @property
    def tag(self) -> str:
        return _TAGS[self]


_TAGS = {
    Level.DEBUG: "[debug]:",
    Level.INFO: "[info]:",
    Level.WARN: "[warn]:",
    Level.ERROR: "[erro]:",
}


def _tag_for(level: int) -> str:
    try:
        return Level(level).tag
    except ValueError:
        return Level.INFO.tag


def _date_tail(moment: datetime) -> str:
    return f"{moment.year}_{moment.month:02d}_{moment.day:02d}_"


class Log:
    """Writes timestamped lines to a dated log file."""

    def __init__(self, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._fp: Optional[TextIO] = None
        self._queue: Optional[BlockQueue] = None
        self._worker: Optional[threading.Thread] = None
        self._stopping = threading.Event()
        self._count = 0
        self._today = 0
        self._dir_name = ""
        self._log_name = ""
        self._split_lines = 5000000
        self._log_buf_size = 8192
        self.close_log = 0

    @property
    def is_async(self) -> bool:
        return self._queue is not None

    def init(
        self,
        file_name: str,
        close_log: int,
        log_buf_size: int = 8192,
        split_lines: int = 5000000,
        max_queue_size: int = 0,
    ) -> None:
        """Open the log file; a positive ``max_queue_size`` makes writes async."""
        self.close()
        self.close_log = close_log
        self._log_buf_size = log_buf_size
        self._split_lines = split_lines
        self._count = 0

        now = self._clock()
        dir_name, sep, log_name = file_name.rpartition("/")
        self._dir_name = dir_name + sep
        self._log_name = log_name
        self._today = now.day
        self._fp = open(f"{self._dir_name}{_date_tail(now)}{self._log_name}", "a")

        if max_queue_size >= 1:
            self._queue = BlockQueue(max_queue_size)
            self._stopping.clear()
            self._worker = threading.Thread(target=self._drain, daemon=True)
            self._worker.start()

    def _drain(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            try:
                line = queue.pop(timeout=0.05)
            except TimeoutError:
                if self._stopping.is_set():
                    return
                continue
            with self._lock:
                if self._fp is not None:
                    self._fp.write(line)

    def _rotate(self, now: datetime) -> None:
        self._count += 1
        if self._today == now.day and self._count % self._split_lines != 0:
            return
        assert self._fp is not None
        self._fp.flush()
        self._fp.close()
        base = f"{self._dir_name}{_date_tail(now)}{self._log_name}"
        if self._today != now.day:
            new_log = base
            self._today = now.day
            self._count = 0
        else:
            new_log = f"{base}.{self._count // self._split_lines}"
        self._fp = open(new_log, "a")

    def write_log(self, level: int, message: str) -> None:
        """Format and write one line at ``level``."""
        if self._fp is None:
            raise RuntimeError("log is not initialised")
        now = self._clock()
        with self._lock:
            self._rotate(now)
            prefix = (
                f"{now.year}-{now.month:02d}-{now.day:02d} "
                f"{now.hour:02d}:{now.minute:02d}:{now.second:02d}."
                f"{now.microsecond:06d} {_tag_for(level)} "
            )
            room = max(0, self._log_buf_size - len(prefix) - 2)
            line = prefix + message[:room] + "\n"

        if self._queue is not None and not self._queue.full():
            self._queue.push(line)
        else:
            with self._lock:
                self._fp.write(line)

    def flush(self) -> None:
        with self._lock:
            if self._fp is not None:
                self._fp.flush()

    def close(self) -> None:
        """Drain pending async lines and close the file."""
        if self._worker is not None:
            self._stopping.set()
            self._worker.join()
            self._worker = None
        self._queue = None
        with self._lock:
            if self._fp is not None:
                self._fp.close()
                self._fp = None


_instance = Log()


def get_instance() -> Log:
    """Return the process-wide logger."""
    return _instance


def _emit(level: Level, message: str) -> None:
    log = get_instance()
    if log.close_log == 0 and log._fp is not None:
        log.write_log(level, message)
        log.flush()


def log_debug(message: str) -> None:
    _emit(Level.DEBUG, message)


def log_info(message: str) -> None:
    _emit(Level.INFO, message)


def log_warn(message: str) -> None:
    _emit(Level.WARN, message)


def log_error(message: str) -> None:
    _emit(Level.ERROR, message)