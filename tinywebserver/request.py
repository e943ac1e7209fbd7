"""HTTP request parsing and mapping of request URLs to files under the site root."""

from __future__ import annotations

import os
import re
import stat
import threading
from enum import Enum, IntEnum
from typing import Callable, Dict, Optional, Tuple, Union

from .log import log_info

READ_BUFFER_SIZE = 2048
FILENAME_LEN = 200

_CR = 0x0D
_LF = 0x0A
_EOL = re.compile(rb"[\r\n]")
_BLANK = re.compile(r"[ \t]")
_LEADING_INT = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")

_PAGES = {
    "0": "/register.html",
    "1": "/log.html",
    "5": "/picture.html",
    "6": "/video.html",
    "7": "/fans.html",
}


class Method(IntEnum):
    GET = 0
    POST = 1
    HEAD = 2
    PUT = 3
    DELETE = 4
    TRACE = 5
    OPTIONS = 6
    CONNECT = 7
    PATH = 8


class CheckState(Enum):
    """Which part of the request the parser expects next."""

    REQUESTLINE = 0
    HEADER = 1
    CONTENT = 2


class HttpCode(Enum):
    NO_REQUEST = 0
    GET_REQUEST = 1
    BAD_REQUEST = 2
    NO_RESOURCE = 3
    FORBIDDEN_REQUEST = 4
    FILE_REQUEST = 5
    INTERNAL_ERROR = 6
    CLOSED_CONNECTION = 7


class LineStatus(Enum):
    OK = 0
    BAD = 1
    OPEN = 2


def _starts_with_ci(text: str, prefix: str) -> bool:
    head = text[: len(prefix)]
    return head.isascii() and head.lower() == prefix


def _equals_ci(text: str, expected: str) -> bool:
    return text.isascii() and text.lower() == expected


def _atol(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


class RequestParser:
    """Incremental HTTP request parser fed with raw bytes from a socket."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Forget all buffered data and parsed fields."""
        self._buf = bytearray()
        self._checked_idx = 0
        self._start_line = 0
        self.check_state = CheckState.REQUESTLINE
        self.method = Method.GET
        self.url: Optional[str] = None
        self.version: Optional[str] = None
        self.host: Optional[str] = None
        self.content_length = 0
        self.linger = False
        self.cgi = False
        self.body: Optional[str] = None

    @property
    def read_idx(self) -> int:
        """Number of bytes buffered so far."""
        return len(self._buf)

    def feed(self, data: bytes) -> int:
        """Buffer as much of ``data`` as fits and return how many bytes were kept.

        Raises BufferError when the read buffer is already full.
        """
        room = READ_BUFFER_SIZE - len(self._buf)
        if room <= 0:
            raise BufferError("read buffer is full")
        chunk = bytes(data[:room])
        self._buf += chunk
        return len(chunk)

    def parse_line(self) -> LineStatus:
        """Advance over the next CRLF-terminated line, if one is complete."""
        buf = self._buf
        match = _EOL.search(buf, self._checked_idx)
        if match is None:
            self._checked_idx = len(buf)
            return LineStatus.OPEN
        index = match.start()
        self._checked_idx = index
        if buf[index] == _CR:
            if index + 1 == len(buf):
                return LineStatus.OPEN
            if buf[index + 1] == _LF:
                buf[index] = 0
                buf[index + 1] = 0
                self._checked_idx = index + 2
                return LineStatus.OK
            return LineStatus.BAD
        if index > 1 and buf[index - 1] == _CR:
            buf[index - 1] = 0
            buf[index] = 0
            self._checked_idx = index + 1
            return LineStatus.OK
        return LineStatus.BAD

    def _get_line(self) -> str:
        end = self._buf.find(0, self._start_line)
        if end < 0:
            end = len(self._buf)
        return self._buf[self._start_line:end].decode("latin-1")

    def parse_request_line(self, text: str) -> HttpCode:
        """Read the method, URL and version from the request line."""
        gap = _BLANK.search(text)
        if gap is None:
            return HttpCode.BAD_REQUEST
        method, rest = text[: gap.start()], text[gap.end():]
        if _equals_ci(method, "get"):
            self.method = Method.GET
        elif _equals_ci(method, "post"):
            self.method = Method.POST
            self.cgi = True
        else:
            return HttpCode.BAD_REQUEST

        url: Optional[str] = rest.lstrip(" \t")
        gap = _BLANK.search(url)
        if gap is None:
            return HttpCode.BAD_REQUEST
        self.version = url[gap.end():].lstrip(" \t")
        url = url[: gap.start()]
        if not _equals_ci(self.version, "http/1.1"):
            return HttpCode.BAD_REQUEST

        for scheme in ("http://", "https://"):
            if url is not None and _starts_with_ci(url, scheme):
                remainder = url[len(scheme):]
                slash = remainder.find("/")
                url = remainder[slash:] if slash >= 0 else None

        if not url or not url.startswith("/"):
            return HttpCode.BAD_REQUEST
        if url == "/":
            url = "/judge.html"
        self.url = url
        self.check_state = CheckState.HEADER
        return HttpCode.NO_REQUEST

    def parse_headers(self, text: str) -> HttpCode:
        """Handle one header line; an empty line ends the header block."""
        if text == "":
            if self.content_length != 0:
                self.check_state = CheckState.CONTENT
                return HttpCode.NO_REQUEST
            return HttpCode.GET_REQUEST
        if _starts_with_ci(text, "connection:"):
            if _equals_ci(text[11:].lstrip(" \t"), "keep-alive"):
                self.linger = True
        elif _starts_with_ci(text, "content-length:"):
            self.content_length = _atol(text[15:].lstrip(" \t"))
        elif _starts_with_ci(text, "host:"):
            self.host = text[5:].lstrip(" \t")
        else:
            log_info(f"oop!unknow header: {text}")
        return HttpCode.NO_REQUEST

    def parse_content(self, text: str) -> HttpCode:
        """Take the body once ``content_length`` bytes of it have arrived."""
        if len(self._buf) >= self.content_length + self._checked_idx:
            raw = text[: max(self.content_length, 0)].encode("latin-1")
            self.body = raw.decode("utf-8", "replace")
            return HttpCode.GET_REQUEST
        return HttpCode.NO_REQUEST

    def process_read(self) -> HttpCode:
        """Parse what is buffered.

        Returns GET_REQUEST once a whole request is in, BAD_REQUEST on a
        malformed request line, and NO_REQUEST while more data is needed.
        """
        line_status = LineStatus.OK
        while (
            self.check_state is CheckState.CONTENT and line_status is LineStatus.OK
        ) or (line_status := self.parse_line()) is LineStatus.OK:
            text = self._get_line()
            self._start_line = self._checked_idx
            log_info(text)
            if self.check_state is CheckState.REQUESTLINE:
                if self.parse_request_line(text) is HttpCode.BAD_REQUEST:
                    return HttpCode.BAD_REQUEST
            elif self.check_state is CheckState.HEADER:
                ret = self.parse_headers(text)
                if ret is HttpCode.BAD_REQUEST:
                    return HttpCode.BAD_REQUEST
                if ret is HttpCode.GET_REQUEST:
                    return HttpCode.GET_REQUEST
            else:
                if self.parse_content(text) is HttpCode.GET_REQUEST:
                    return HttpCode.GET_REQUEST
                line_status = LineStatus.OPEN
        return HttpCode.NO_REQUEST


class UserStore:
    """Known user names and passwords, shared between connections."""

    def __init__(
        self,
        users: Optional[Dict[str, str]] = None,
        insert: Optional[Callable[[str, str], bool]] = None,
    ) -> None:
        self.users: Dict[str, str] = users if users is not None else {}
        self._insert = insert
        self._lock = threading.Lock()

    def login(self, name: str, password: str) -> bool:
        with self._lock:
            return name in self.users and self.users[name] == password

    def register(self, name: str, password: str) -> bool:
        """Add a new user; False if the name is taken or storing it failed."""
        with self._lock:
            if name in self.users:
                return False
            stored = True if self._insert is None else bool(self._insert(name, password))
            self.users[name] = password
            return stored


def parse_credentials(body: str) -> Tuple[str, str]:
    """Split a ``user=<name>&password=<password>`` form body."""
    amp = body.find("&", 5)
    if amp < 0:
        raise ValueError("form body has no '&' separator")
    return body[5:amp], body[amp + 10:]


def resolve_file(
    parser: RequestParser, doc_root: Union[str, os.PathLike], users: UserStore
) -> str:
    """Return the path of the file that answers the parsed request.

    Login and registration POSTs are handled here and rewrite ``parser.url``.
    """
    root = os.fspath(doc_root)
    url = parser.url
    if url is None:
        raise ValueError("request has no URL")
    slash = url.rfind("/")
    choice = url[slash + 1: slash + 2]

    if parser.cgi and choice in ("2", "3"):
        name, password = parse_credentials(parser.body or "")
        if choice == "3":
            url = "/log.html" if users.register(name, password) else "/registerError.html"
        else:
            url = "/welcome.html" if users.login(name, password) else "/logError.html"
        parser.url = url
        suffix = url
    else:
        suffix = _PAGES.get(choice, url)
    return (root + suffix)[: FILENAME_LEN - 1]


def check_file(path: Union[str, os.PathLike]) -> HttpCode:
    """Classify ``path`` as servable, missing, forbidden or a directory."""
    try:
        info = os.stat(path)
    except OSError:
        return HttpCode.NO_RESOURCE
    if not info.st_mode & stat.S_IROTH:
        return HttpCode.FORBIDDEN_REQUEST
    if stat.S_ISDIR(info.st_mode):
        return HttpCode.BAD_REQUEST
    return HttpCode.FILE_REQUEST