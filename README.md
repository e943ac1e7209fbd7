# tinywebserver

tinywebserver is a small multi-threaded HTTP/1.1 server. It serves static pages
from a document root. It also handles a login form and a registration form, and
keeps user names and passwords in a MySQL `user(username, passwd)` table.

## Install

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Running

Run the server from a directory that holds a `root/` folder with the pages to
serve:

```
tinywebserver -p 9006 -l 0 -m 0 -o 0 -s 8 -t 8 -c 0 -a 0
```

Every option takes an integer, either attached (`-p9006`) or as the next
argument. Unknown options are ignored, and a value that is not a number reads
as 0.

| option | meaning | default |
|--------|---------|---------|
| `-p`   | port to listen on | 9006 |
| `-l`   | log writing: 0 writes at once, 1 writes through a queue of 800 lines | 0 |
| `-m`   | trigger mode (listen/connection): 0 LT+LT, 1 LT+ET, 2 ET+LT, 3 ET+ET | 0 |
| `-o`   | `SO_LINGER` on the listening socket: 0 off, 1 on with a 1 second linger | 0 |
| `-s`   | number of database connections | 8 |
| `-t`   | number of worker threads | 8 |
| `-c`   | 1 turns logging off | 0 |
| `-a`   | concurrency model: 0 proactor, 1 reactor | 0 |

In edge-triggered listen mode the server accepts every waiting client at once;
in edge-triggered connection mode it reads until the socket has no more data.
In proactor mode the event loop reads and writes and the workers only parse and
build responses; in reactor mode the workers do the reads and writes too.

The database is reached at `172.18.0.2:3306` (`DB_HOST` and `DB_PORT` in
`tinywebserver.server`) with the user, password and database name given in
`tinywebserver.cli` (`DB_USER`, `DB_PASSWORD`, `DB_NAME`). If the connection
pool cannot be opened, the command prints the error and exits with status 1.

The server stops on `SIGTERM`, or when `WebServer.stop()` is called from
another thread.

Unless `-c 1` is given, the log is written to `YYYY_MM_DD_ServerLog` in the
current directory. A new file is started each day and after every 800000 lines.

## Routes

The first character of the last path segment decides which page is served:

- `/` → `judge.html`
- `/0` → `register.html`, `/1` → `log.html`
- `/5` → `picture.html`, `/6` → `video.html`, `/7` → `fans.html`
- `POST /2...` checks a login. It serves `welcome.html` when the login is good
  and `logError.html` when it is not.
- `POST /3...` registers a user. It serves `log.html` when the name is new and
  the insert succeeds, and `registerError.html` otherwise.
- any other path is served as a file under the document root.

The form body must look like `user=<name>&password=<password>`.

Only `GET` and `POST` with version `HTTP/1.1` are accepted. A malformed request
is answered with the 404 page, a file that others cannot read with 403. When
the file does not exist or is empty, the connection is closed without a
response. Connections idle for 15 seconds (three 5 second time slots) are
closed.

## Using it as a library

```python
from tinywebserver.server import WebServer

server = WebServer("/srv/www/root")
server.init(9006, "root", db_password, "testdb", 0, 0, 0, 8, 8, 0, 0)
server.log_write()
server.sql_pool()
server.thread_pool()
server.trig_mode()
server.event_listen()
server.event_loop()
```

The parts can also be used alone:

- `tinywebserver.request`: `RequestParser` (incremental request parsing),
  `UserStore`, `parse_credentials`, `resolve_file`, `check_file`.
- `tinywebserver.connection`: `ResponseBuilder`, `build_response`,
  `HttpConnection`.
- `tinywebserver.sqlpool`: `ConnectionPool` (takes an optional `connect`
  callable; `connection()` lends a connection in a `with` block), `load_users`.
- `tinywebserver.threadpool`: `ThreadPool`.
- `tinywebserver.timer`: `SortTimerList`, `UtilTimer`, `ClientData`.
- `tinywebserver.log`: `Log`, `get_instance`, `log_debug`, `log_info`,
  `log_warn`, `log_error`.
- `tinywebserver.blockqueue`: `BlockQueue`, a bounded queue with a blocking
  `pop`.
- `tinywebserver.config`: `Config` and its `parse_arg`.

## What it does not do

- It ships no pages: the `root/` folder with `judge.html` and the other pages
  has to be supplied.
- It speaks plain HTTP only, with no TLS, and supports no methods other than
  `GET` and `POST`.
- It does not run without MySQL: the command stops if the database cannot be
  reached.
- It does not detach itself into the background.