"""A fixed-size pool of database connections."""

from __future__ import annotations

import threading
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Dict, Iterator, Optional

import pymysql

from .log import log_error


def _mysql_connect(host: str, user: str, password: str, database: str, port: int) -> Any:
    return pymysql.connect(
        host=host, user=user, password=password, database=database, port=port
    )


class ConnectionPool:
    """Hands out pre-opened connections and takes them back."""

    def __init__(self, connect: Optional[Callable[..., Any]] = None) -> None:
        self._connect = connect if connect is not None else _mysql_connect
        self._lock = threading.Lock()
        self._conns: Deque[Any] = deque()
        self._reserve = threading.Semaphore(0)
        self._max_conn = 0
        self._cur_conn = 0
        self._free_conn = 0
        self.url = ""
        self.port = 0
        self.user = ""
        self.password = ""
        self.database_name = ""
        self.close_log = 0

    def init(
        self,
        url: str,
        user: str,
        password: str,
        database_name: str,
        port: int,
        max_conn: int,
        close_log: int,
    ) -> None:
        """Open ``max_conn`` connections; raises ConnectionError if one fails."""
        self.url = url
        self.port = port
        self.user = user
        self.password = password
        self.database_name = database_name
        self.close_log = close_log

        for _ in range(max_conn):
            try:
                con = self._connect(url, user, password, database_name, port)
            except Exception as exc:
                log_error("MYSQL Error")
                raise ConnectionError("MYSQL Error") from exc
            if con is None:
                log_error("MYSQL Error")
                raise ConnectionError("MYSQL Error")
            self._conns.append(con)
            self._free_conn += 1

        self._reserve = threading.Semaphore(self._free_conn)
        self._max_conn = self._free_conn

    def get_connection(self) -> Any:
        """Take a free connection, or return None if the pool holds none."""
        if not self._conns:
            return None
        self._reserve.acquire()
        with self._lock:
            con = self._conns.popleft()
            self._free_conn -= 1
            self._cur_conn += 1
        return con

    def release_connection(self, con: Any) -> bool:
        """Give ``con`` back to the pool."""
        if con is None:
            return False
        with self._lock:
            self._conns.append(con)
            self._free_conn += 1
            self._cur_conn -= 1
        self._reserve.release()
        return True

    def free_count(self) -> int:
        return self._free_conn

    def destroy(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            if self._cur_conn != 0:
                log_error(
                    f"Connection pool destroyed with {self._cur_conn} connections still in use"
                )
            if self._free_conn != self._max_conn:
                log_error(
                    "Connection pool destroyed with incorrect number of free connections: "
                    f"{self._free_conn} (expected {self._max_conn})"
                )
            if self._conns:
                for con in self._conns:
                    con.close()
                self._cur_conn = 0
                self._free_conn = 0
                self._conns.clear()

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection for the duration of a ``with`` block."""
        con = self.get_connection()
        try:
            yield con
        finally:
            if con is not None:
                self.release_connection(con)


_instance: Optional[ConnectionPool] = None
_instance_lock = threading.Lock()


def get_instance() -> ConnectionPool:
    """Return the process-wide connection pool."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = ConnectionPool()
        return _instance


def load_users(pool: ConnectionPool) -> Dict[str, str]:
    """Read every user name and password from the ``user`` table."""
    with pool.connection() as con:
        if con is None:
            raise ConnectionError("no database connection available")
        try:
            with con.cursor() as cursor:
                cursor.execute("SELECT username,passwd FROM user")
                rows = cursor.fetchall()
        except pymysql.MySQLError as exc:
            log_error(f"SELECT error:{exc}\n")
            raise
    return {str(name): str(passwd) for name, passwd in rows}