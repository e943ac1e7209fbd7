[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinywebserver"
version = "0.1.0"
description = "A small threaded HTTP/1.1 server with MySQL-backed login and registration pages, idle-connection timers and a rotating file log."
requires-python = ">=3.10"
dependencies = [
    "pymysql",
]
keywords = ["http", "web server", "thread pool", "mysql", "connection pool", "logging", "timer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
tinywebserver = "tinywebserver.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tinywebserver"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
