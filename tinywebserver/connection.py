"""One client connection: reading the request, building and sending the response."""

from __future__ import annotations

import os
import socket
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from .log import log_info
from .request import (
    READ_BUFFER_SIZE,
    HttpCode,
    RequestParser,
    UserStore,
    check_file,
    resolve_file,
)

WRITE_BUFFER_SIZE = 1024

OK_200_TITLE = "OK"
ERROR_400_TITLE = "Bad Request"
ERROR_400_FORM = "Your request has bad syntax or is inherently impossible to staisfy.\n"
ERROR_403_TITLE = "Forbidden"
ERROR_403_FORM = "You do not have permission to get file form this server.\n"
ERROR_404_TITLE = "Not Found"
ERROR_404_FORM = "The requested file was not found on this server.\n"
ERROR_500_TITLE = "Internal Error"
ERROR_500_FORM = "There was an unusual problem serving the request file.\n"

# A malformed request is answered with the 404 page.
_ERROR_PAGES = {
    HttpCode.INTERNAL_ERROR: (500, ERROR_500_TITLE, ERROR_500_FORM),
    HttpCode.BAD_REQUEST: (404, ERROR_404_TITLE, ERROR_404_FORM),
    HttpCode.FORBIDDEN_REQUEST: (403, ERROR_403_TITLE, ERROR_403_FORM),
}


class Interest(Enum):
    """The socket event a connection is waiting for next."""

    READ = "read"
    WRITE = "write"


class ResponseBuilder:
    """Accumulates the status line and headers of a response in a bounded buffer."""

    def __init__(self, capacity: int = WRITE_BUFFER_SIZE) -> None:
        self._capacity = capacity
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def add_response(self, text: str) -> bool:
        """Append ``text``; False if it does not fit in the buffer."""
        if len(self._buf) >= self._capacity:
            return False
        data = text.encode("utf-8")
        if len(data) >= self._capacity - 1 - len(self._buf):
            return False
        self._buf += data
        log_info(f"request:{self._buf.decode('utf-8', 'replace')}")
        return True

    def add_status_line(self, status: int, title: str) -> bool:
        return self.add_response(f"HTTP/1.1 {status} {title}\r\n")

    def add_headers(self, content_len: int, linger: bool) -> bool:
        return (
            self.add_response(f"Content-Length:{content_len}\r\n")
            and self.add_response(
                f"Connection:{'keep-alive' if linger else 'close'}\r\n"
            )
            and self.add_response("\r\n")
        )

    def add_content(self, content: str) -> bool:
        return self.add_response(content)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


def build_response(
    code: HttpCode,
    linger: bool,
    file_path: Optional[Union[str, os.PathLike]] = None,
) -> Optional[Tuple[bytes, bytes]]:
    """Return ``(head, body)`` for ``code``, or None when the connection should close."""
    builder = ResponseBuilder()
    page = _ERROR_PAGES.get(code)
    if page is not None:
        status, title, form = page
        builder.add_status_line(status, title)
        builder.add_headers(len(form.encode("utf-8")), linger)
        if not builder.add_content(form):
            return None
        return builder.getvalue(), b""
    if code is HttpCode.FILE_REQUEST:
        if file_path is None:
            raise ValueError("a file response needs a file path")
        body = Path(file_path).read_bytes()
        if not body:
            # An empty file is not served: the connection is dropped instead.
            return None
        builder.add_status_line(200, OK_200_TITLE)
        builder.add_headers(len(body), linger)
        return builder.getvalue(), body
    return None


class HttpConnection:
    """State of one accepted client socket."""

    user_count = 0
    _count_lock = threading.Lock()

    def __init__(
        self,
        sock: socket.socket,
        address: Any,
        doc_root: Union[str, os.PathLike],
        trig_mode: int = 0,
        close_log: int = 0,
        users: Optional[UserStore] = None,
    ) -> None:
        self.sock: Optional[socket.socket] = sock
        self.fd = sock.fileno()
        self.address = address
        self.doc_root = os.fspath(doc_root)
        self.trig_mode = trig_mode
        self.close_log = close_log
        self.users = users if users is not None else UserStore()
        self.interest = Interest.READ
        self.parser = RequestParser()
        sock.setblocking(False)
        with HttpConnection._count_lock:
            HttpConnection.user_count += 1
        self._reset()

    def _reset(self) -> None:
        self.parser.reset()
        self.mysql: Any = None
        self.timer_flag = 0
        self.improv = 0
        self.state = 0
        self._real_file: Optional[str] = None
        self._pending = b""
        self._sent = 0

    @property
    def closed(self) -> bool:
        return self.sock is None

    def read_once(self) -> bool:
        """Read what the client sent; False on EOF, error or a full buffer."""
        if self.sock is None or self.parser.read_idx >= READ_BUFFER_SIZE:
            return False
        if self.trig_mode == 0:
            try:
                data = self.sock.recv(READ_BUFFER_SIZE - self.parser.read_idx)
            except OSError:
                return False
            if not data:
                return False
            self.parser.feed(data)
            return True
        while True:
            try:
                data = self.sock.recv(READ_BUFFER_SIZE - self.parser.read_idx)
            except BlockingIOError:
                return True
            except OSError:
                return False
            if not data:
                return False
            self.parser.feed(data)

    def _do_request(self) -> HttpCode:
        try:
            path = resolve_file(self.parser, self.doc_root, self.users)
        except ValueError:
            return HttpCode.BAD_REQUEST
        self._real_file = path
        return check_file(path)

    def process(self) -> None:
        """Parse the buffered request and prepare the response."""
        code = self.parser.process_read()
        if code is HttpCode.NO_REQUEST:
            self.interest = Interest.READ
            return
        if code is HttpCode.GET_REQUEST:
            code = self._do_request()
        try:
            response = build_response(code, self.parser.linger, self._real_file)
        except OSError:
            response = build_response(HttpCode.INTERNAL_ERROR, self.parser.linger)
        if response is None:
            self.close_conn()
        else:
            head, body = response
            self._pending = head + body
            self._sent = 0
        self.interest = Interest.WRITE

    def write(self) -> bool:
        """Send the pending response; False when the connection should close."""
        if self.sock is None:
            return False
        if self._sent >= len(self._pending):
            self.interest = Interest.READ
            self._reset()
            return True
        view = memoryview(self._pending)
        while True:
            try:
                sent = self.sock.send(view[self._sent:])
            except BlockingIOError:
                self.interest = Interest.WRITE
                return True
            except OSError:
                return False
            self._sent += sent
            if self._sent >= len(self._pending):
                self.interest = Interest.READ
                if self.parser.linger:
                    self._reset()
                    return True
                return False

    def close_conn(self, real_close: bool = True) -> None:
        """Close the socket and drop it from the user count."""
        if real_close and self.sock is not None:
            print(f"close {self.fd}")
            self.sock.close()
            self.sock = None
            with HttpConnection._count_lock:
                HttpConnection.user_count -= 1