"""The event loop: accepting clients, dispatching I/O and expiring idle connections."""

from __future__ import annotations

import os
import queue
import selectors
import signal
import socket
import struct
import threading
import time
from typing import Any, Dict, List, Optional

import pymysql

from .connection import HttpConnection, Interest
from .log import get_instance as get_log, log_error, log_info
from .request import UserStore
from .sqlpool import ConnectionPool, get_instance as get_sql_pool, load_users
from .threadpool import ThreadPool
from .timer import ClientData, SortTimerList, UtilTimer

MAX_FD = 65535
MAX_EVENT_NUMBER = 10000
TIMESLOT = 5

DB_HOST = "172.18.0.2"
DB_PORT = 3306

_SIGALRM = getattr(signal, "SIGALRM", 14)
_SIGTERM = signal.SIGTERM
_WAKE = 0


class _Task:
    """A connection handed to the worker pool."""

    def __init__(self, server: "WebServer", conn: HttpConnection, notify: bool) -> None:
        self._server = server
        self.conn = conn
        self._notify = notify
        self._done = threading.Event()
        self.mysql: Any = None
        self.state = 0
        self.timer_flag = 0

    @property
    def improv(self) -> int:
        return 1 if self._done.is_set() else 0

    @improv.setter
    def improv(self, value: int) -> None:
        if value:
            self._done.set()
        else:
            self._done.clear()

    def wait(self) -> None:
        self._done.wait()

    def read_once(self) -> bool:
        return self.conn.read_once()

    def write(self) -> bool:
        return self.conn.write()

    def process(self) -> None:
        try:
            self.conn.process()
        except Exception as exc:
            log_error(f"processing failed: {exc!r}")
            self.conn.close_conn()
        if self._notify:
            self._server._request_update(self.conn)


class WebServer:
    """A single-process HTTP server driven by a readiness selector."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = root if root is not None else os.path.join(os.getcwd(), "root")
        self.port = 9006
        self.user = ""
        self.password = ""
        self.database_name = ""
        self.log_write_mode = 0
        self.opt_linger = 0
        self.trigger_mode = 0
        self.listen_trigmode = 0
        self.conn_trigmode = 0
        self.sql_num = 8
        self.thread_num = 8
        self.close_log = 0
        self.actor_model = 0

        self.conn_pool: Optional[ConnectionPool] = None
        self.user_store = UserStore()
        self.workers: Optional[ThreadPool] = None

        self.users: Dict[int, HttpConnection] = {}
        self.users_timer: Dict[int, ClientData] = {}
        self.timer_list = SortTimerList()

        self._selector: Optional[selectors.BaseSelector] = None
        self._listen_sock: Optional[socket.socket] = None
        self._pipe_r: Optional[socket.socket] = None
        self._pipe_w: Optional[socket.socket] = None
        self._alarm: Optional[threading.Timer] = None
        self._updates: "queue.SimpleQueue[HttpConnection]" = queue.SimpleQueue()
        self._old_sigterm: Any = None
        self._sigterm_installed = False

    def init(
        self,
        port: int,
        user: str,
        password: str,
        database_name: str,
        log_write: int,
        opt_linger: int,
        trig_mode: int,
        sql_num: int,
        thread_num: int,
        close_log: int,
        actor_model: int,
    ) -> None:
        """Store the settings the other setup steps use."""
        self.port = port
        self.user = user
        self.password = password
        self.database_name = database_name
        self.log_write_mode = log_write
        self.opt_linger = opt_linger
        self.trigger_mode = trig_mode
        self.sql_num = sql_num
        self.thread_num = thread_num
        self.close_log = close_log
        self.actor_model = actor_model

    def trig_mode(self) -> None:
        """Split the combined trigger mode into listen and connection modes."""
        modes = {0: (0, 0), 1: (0, 1), 2: (1, 0), 3: (1, 1)}
        if self.trigger_mode in modes:
            self.listen_trigmode, self.conn_trigmode = modes[self.trigger_mode]

    def log_write(self) -> None:
        """Open the server log unless logging is switched off."""
        if self.close_log == 0:
            queue_size = 800 if self.log_write_mode == 1 else 0
            get_log().init("ServerLog", self.close_log, 2000, 800000, queue_size)

    def sql_pool(self) -> None:
        """Open the database pool and load the known users from it."""
        if self.conn_pool is None:
            self.conn_pool = get_sql_pool()
        self.conn_pool.init(
            DB_HOST,
            self.user,
            self.password,
            self.database_name,
            DB_PORT,
            self.sql_num,
            self.close_log,
        )
        self.user_store = UserStore(load_users(self.conn_pool), self._insert_user)

    def _insert_user(self, name: str, password: str) -> bool:
        pool = self.conn_pool
        if pool is None:
            return False
        with pool.connection() as con:
            if con is None:
                return False
            try:
                with con.cursor() as cursor:
                    cursor.execute(
                        "INSERT INTO user(username, passwd) VALUES(%s, %s)",
                        (name, password),
                    )
                con.commit()
            except pymysql.MySQLError as exc:
                log_error(f"INSERT error:{exc}")
                return False
        return True

    def thread_pool(self) -> None:
        """Start the worker threads."""
        # Workers do not hold a database connection while processing: user
        # registration borrows one itself, so a worker never waits on the pool.
        self.workers = ThreadPool(self.actor_model, None, self.thread_num)

    def event_listen(self) -> None:
        """Open the listening socket, the signal channel and the tick timer."""
        listen_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if self.opt_linger == 0:
            listen_sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 0, 0))
        elif self.opt_linger == 1:
            listen_sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 1))
        listen_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listen_sock.bind(("", self.port))
        listen_sock.listen(5)
        listen_sock.setblocking(False)
        self.port = listen_sock.getsockname()[1]
        self._listen_sock = listen_sock

        self._selector = selectors.DefaultSelector()
        self._selector.register(listen_sock, selectors.EVENT_READ)

        self._pipe_r, self._pipe_w = socket.socketpair()
        self._pipe_r.setblocking(False)
        self._pipe_w.setblocking(False)
        self._selector.register(self._pipe_r, selectors.EVENT_READ)

        if threading.current_thread() is threading.main_thread():
            self._old_sigterm = signal.signal(_SIGTERM, self._on_signal)
            self._sigterm_installed = True
        self._schedule_alarm()

    def stop(self) -> None:
        """Ask a running event loop to finish."""
        if self._pipe_w is None:
            raise RuntimeError("server is not listening")
        self._raise_signal(_SIGTERM)

    def event_loop(self) -> None:
        """Serve clients until stopped, then release every resource."""
        if self._selector is None:
            raise RuntimeError("event_listen() has not been called")
        if self.workers is None:
            raise RuntimeError("thread_pool() has not been called")
        timeout = False
        stop_server = False
        try:
            while not stop_server:
                for key, mask in self._selector.select():
                    sock = key.fileobj
                    if sock is self._listen_sock:
                        self._deal_client_data()
                    elif sock is self._pipe_r:
                        received = self._deal_with_signal()
                        if not received:
                            log_error("dealclientdata failure")
                        timeout = timeout or _SIGALRM in received
                        stop_server = stop_server or _SIGTERM in received
                    else:
                        conn = key.data
                        if self.users.get(conn.fd) is not conn or conn.closed:
                            continue
                        if mask & selectors.EVENT_READ:
                            self._deal_with_read(conn)
                        elif mask & selectors.EVENT_WRITE:
                            self._deal_with_write(conn)
                self._apply_pending_updates()
                if timeout:
                    self._timer_handler()
                    log_info("timer tick")
                    timeout = False
        finally:
            self._cleanup()

    # -- signals and timers -------------------------------------------------

    def _on_signal(self, signum: int, frame: Any) -> None:
        self._raise_signal(signum)

    def _raise_signal(self, signum: int) -> None:
        if self._pipe_w is None:
            return
        try:
            self._pipe_w.send(bytes([signum & 0xFF]))
        except OSError:
            pass

    def _schedule_alarm(self) -> None:
        alarm = threading.Timer(TIMESLOT, self._raise_signal, (_SIGALRM,))
        alarm.daemon = True
        self._alarm = alarm
        alarm.start()

    def _timer_handler(self) -> None:
        self.timer_list.tick()
        self._schedule_alarm()

    def _deal_with_signal(self) -> List[int]:
        assert self._pipe_r is not None
        try:
            data = self._pipe_r.recv(1024)
        except OSError:
            return []
        return list(data)

    # -- client bookkeeping -------------------------------------------------

    def _deal_client_data(self) -> None:
        assert self._listen_sock is not None
        while True:
            try:
                sock, address = self._listen_sock.accept()
            except OSError as exc:
                log_error(f"accept error:errno is:{exc.errno}")
                break
            if HttpConnection.user_count >= MAX_FD:
                self._show_error(sock, "Internal server busy")
                log_error("Internal server busy")
                break
            self._add_client(sock, address)
            if self.listen_trigmode == 0:
                break

    @staticmethod
    def _show_error(sock: socket.socket, info: str) -> None:
        try:
            sock.send(info.encode("utf-8"))
        except OSError:
            pass
        sock.close()

    def _add_client(self, sock: socket.socket, address: Any) -> None:
        conn = HttpConnection(
            sock, address, self.root, self.conn_trigmode, self.close_log, self.user_store
        )
        fd = conn.fd
        self.users[fd] = conn
        data = ClientData(address=address, sockfd=fd)
        timer = UtilTimer(
            expire=time.time() + 3 * TIMESLOT, cb_func=self._expire_client, user_data=data
        )
        data.timer = timer
        self.users_timer[fd] = data
        self.timer_list.add_timer(timer)
        self._watch(conn)

    def _expire_client(self, data: Optional[ClientData]) -> None:
        if data is not None and self.users_timer.get(data.sockfd) is data:
            self._close_client(data.sockfd)

    def _close_client(self, fd: int) -> None:
        data = self.users_timer.pop(fd, None)
        if data is not None and data.timer is not None:
            self.timer_list.del_timer(data.timer)
        conn = self.users.pop(fd, None)
        if conn is not None:
            if conn.sock is not None:
                self._unwatch(conn.sock)
            conn.close_conn()

    def _adjust_timer(self, timer: UtilTimer) -> None:
        timer.expire = time.time() + 3 * TIMESLOT
        self.timer_list.adjust_timer(timer)
        log_info("adjust timer once")

    def _deal_timer(self, timer: Optional[UtilTimer], fd: int) -> None:
        if timer is not None and timer.cb_func is not None:
            timer.cb_func(timer.user_data)
            self.timer_list.del_timer(timer)
        else:
            self._close_client(fd)
        log_info(f"close fd {fd}")

    def _timer_of(self, fd: int) -> Optional[UtilTimer]:
        data = self.users_timer.get(fd)
        return data.timer if data is not None else None

    # -- selector registration ----------------------------------------------

    def _watch(self, conn: HttpConnection) -> None:
        assert self._selector is not None
        if conn.sock is None:
            return
        events = selectors.EVENT_READ if conn.interest is Interest.READ else selectors.EVENT_WRITE
        try:
            self._selector.modify(conn.sock, events, conn)
        except KeyError:
            self._selector.register(conn.sock, events, conn)

    def _unwatch(self, sock: socket.socket) -> None:
        assert self._selector is not None
        try:
            self._selector.unregister(sock)
        except (KeyError, ValueError):
            pass

    def _request_update(self, conn: HttpConnection) -> None:
        self._updates.put(conn)
        self._raise_signal(_WAKE)

    def _apply_pending_updates(self) -> None:
        while True:
            try:
                conn = self._updates.get_nowait()
            except queue.Empty:
                return
            self._apply_update(conn)

    def _apply_update(self, conn: HttpConnection) -> None:
        if self.users.get(conn.fd) is not conn:
            return
        if conn.closed:
            self._close_client(conn.fd)
        else:
            self._watch(conn)

    # -- I/O dispatch ---------------------------------------------------------

    def _dispatch_reactor(self, conn: HttpConnection, state: int) -> None:
        assert self.workers is not None and conn.sock is not None
        fd = conn.fd
        timer = self._timer_of(fd)
        if timer is not None:
            self._adjust_timer(timer)
        self._unwatch(conn.sock)
        task = _Task(self, conn, notify=False)
        if not self.workers.append(task, state):
            self._watch(conn)
            return
        task.wait()
        if task.timer_flag:
            self._deal_timer(timer, fd)
        else:
            self._apply_update(conn)

    def _deal_with_read(self, conn: HttpConnection) -> None:
        if self.actor_model == 1:
            self._dispatch_reactor(conn, 0)
            return
        assert self.workers is not None and conn.sock is not None
        fd = conn.fd
        timer = self._timer_of(fd)
        if conn.read_once():
            log_info(f"deal with the client({fd})")
            self._unwatch(conn.sock)
            if not self.workers.append(_Task(self, conn, notify=True), 0):
                self._watch(conn)
            if timer is not None:
                self._adjust_timer(timer)
        else:
            self._deal_timer(timer, fd)

    def _deal_with_write(self, conn: HttpConnection) -> None:
        if self.actor_model == 1:
            self._dispatch_reactor(conn, 1)
            return
        fd = conn.fd
        timer = self._timer_of(fd)
        if conn.write():
            log_info(f"send data to the client({fd})")
            if timer is not None:
                self._adjust_timer(timer)
            self._watch(conn)
        else:
            self._deal_timer(timer, fd)

    # -- shutdown -------------------------------------------------------------

    def _cleanup(self) -> None:
        if self._alarm is not None:
            self._alarm.cancel()
            self._alarm = None
        for fd in list(self.users):
            self._close_client(fd)
        if self._selector is not None:
            self._selector.close()
            self._selector = None
        for sock in (self._listen_sock, self._pipe_r, self._pipe_w):
            if sock is not None:
                sock.close()
        self._listen_sock = self._pipe_r = self._pipe_w = None
        if self.workers is not None:
            self.workers.shutdown()
            self.workers = None
        if self._sigterm_installed and threading.current_thread() is threading.main_thread():
            signal.signal(_SIGTERM, self._old_sigterm)
            self._sigterm_installed = False