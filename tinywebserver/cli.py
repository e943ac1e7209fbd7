"""Command that starts the web server."""

from __future__ import annotations

import sys
from typing import List, Optional

from .config import Config
from .server import WebServer

DB_USER = "root"
DB_PASSWORD = "password"
DB_NAME = "testdb"


def main(argv: Optional[List[str]] = None) -> int:
    """Parse options, set the server up and serve until stopped."""
    config = Config()
    config.parse_arg(sys.argv[1:] if argv is None else argv)

    server = WebServer()
    server.init(
        config.port,
        DB_USER,
        DB_PASSWORD,
        DB_NAME,
        config.log_write,
        config.opt_linger,
        config.trig_mode,
        config.sql_num,
        config.thread_num,
        config.close_log,
        config.actor_model,
    )
    server.log_write()
    try:
        server.sql_pool()
    except ConnectionError as exc:
        print(exc, file=sys.stderr)
        return 1
    server.thread_pool()
    server.trig_mode()
    server.event_listen()
    server.event_loop()
    return 0


if __name__ == "__main__":
    sys.exit(main())