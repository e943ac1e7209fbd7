"""Command-line settings for the web server."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

_LEADING_INT = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")

# Option letter -> Config field; every option takes a value.
_OPTIONS = {
    "p": "port",
    "l": "log_write",
    "m": "trig_mode",
    "o": "opt_linger",
    "s": "sql_num",
    "t": "thread_num",
    "c": "close_log",
    "a": "actor_model",
}


def _atoi(text: str) -> int:
    """Read a leading integer the lenient way: junk yields 0."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


@dataclass
class Config:
    """Server settings with their defaults."""

    port: int = 9006
    log_write: int = 0  # 0 synchronous, 1 asynchronous
    trig_mode: int = 0  # combined listen/connection trigger mode
    listen_trigmode: int = 0
    conn_trigmode: int = 0
    opt_linger: int = 0
    sql_num: int = 8
    thread_num: int = 8
    close_log: int = 0
    actor_model: int = 0  # 0 proactor, 1 reactor

    def parse_arg(self, argv: Iterable[str]) -> None:
        """Apply options from ``argv`` (the arguments after the program name).

        Recognised options are -p -l -m -o -s -t -c -a, each taking an integer
        either attached (``-p9000``) or as the next argument. Unknown options
        are ignored and parsing stops at ``--``.
        """
        args = iter(argv)
        for arg in args:
            if arg == "--":
                break
            if len(arg) < 2 or not arg.startswith("-"):
                continue
            letters = arg[1:]
            for pos, letter in enumerate(letters):
                field = _OPTIONS.get(letter)
                if field is None:
                    continue
                rest = letters[pos + 1:]
                value: Optional[str] = rest if rest else next(args, None)
                if value is not None:
                    setattr(self, field, _atoi(value))
                break