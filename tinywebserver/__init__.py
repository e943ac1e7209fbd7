"""Small threaded HTTP server with MySQL-backed login, idle-connection timers and a rotating log."""

__version__ = "0.1.0"