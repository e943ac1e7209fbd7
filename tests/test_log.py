from datetime import datetime
from pathlib import Path

import pytest

from tinywebserver.log import Level, Log, get_instance, log_error, log_info


class _Clock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


@pytest.fixture
def clock():
    return _Clock(datetime(2024, 1, 2, 3, 4, 5, 678901))


@pytest.mark.parametrize(
    "level, tag",
    [
        (Level.DEBUG, "[debug]:"),
        (Level.INFO, "[info]:"),
        (Level.WARN, "[warn]:"),
        (Level.ERROR, "[erro]:"),
    ],
)
def test_level_tags(tmp_path, clock, level, tag):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0)
    log.write_log(level, "msg")
    log.close()
    text = (tmp_path / "2024_01_02_ServerLog").read_text()
    assert text == f"2024-01-02 03:04:05.678901 {tag} msg\n"


def test_sync_line_format(tmp_path, clock):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0)
    log.write_log(Level.INFO, "hello")
    log.close()
    text = (tmp_path / "2024_01_02_ServerLog").read_text()
    assert text == "2024-01-02 03:04:05.678901 [info]: hello\n"


def test_unknown_level_uses_info(tmp_path, clock):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0)
    log.write_log(42, "odd")
    log.write_log(Level.WARN, "careful")
    log.close()
    lines = (tmp_path / "2024_01_02_ServerLog").read_text().splitlines()
    assert lines[0].endswith("[info]: odd")
    assert lines[1].endswith("[warn]: careful")


def test_relative_name_without_directory(tmp_path, monkeypatch, clock):
    monkeypatch.chdir(tmp_path)
    log = Log(clock=clock)
    log.init("ServerLog", 0)
    assert log.is_async is False
    log.write_log(Level.DEBUG, "x")
    log.close()
    created = sorted(path.name for path in Path.cwd().iterdir())
    assert created == ["2024_01_02_ServerLog"]
    text = (Path.cwd() / created[0]).read_text()
    assert text == "2024-01-02 03:04:05.678901 [debug]: x\n"


def test_split_by_line_count(tmp_path, clock):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0, split_lines=2)
    log.write_log(Level.INFO, "one")
    log.write_log(Level.INFO, "two")
    log.close()
    first = (tmp_path / "2024_01_02_ServerLog").read_text()
    second = (tmp_path / "2024_01_02_ServerLog.1").read_text()
    assert first.endswith("one\n")
    assert second.endswith("two\n")


def test_new_file_on_new_day(tmp_path, clock):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0)
    log.write_log(Level.INFO, "monday")
    clock.moment = datetime(2024, 1, 3, 0, 0, 1, 0)
    log.write_log(Level.INFO, "tuesday")
    log.close()
    assert (tmp_path / "2024_01_02_ServerLog").read_text().endswith("monday\n")
    assert (tmp_path / "2024_01_03_ServerLog").read_text().endswith("tuesday\n")


def test_message_truncated_to_buffer(tmp_path, clock):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0, log_buf_size=50)
    log.write_log(Level.INFO, "z" * 200)
    log.close()
    text = (tmp_path / "2024_01_02_ServerLog").read_text()
    assert text.endswith("\n")
    assert len(text) <= 50
    assert text.count("\n") == 1


def test_async_lines_written_in_order(tmp_path, clock):
    log = Log(clock=clock)
    log.init(f"{tmp_path}/ServerLog", 0, max_queue_size=8)
    assert log.is_async is True
    for number in range(20):
        log.write_log(Level.INFO, f"line {number}")
    log.close()
    lines = (tmp_path / "2024_01_02_ServerLog").read_text().splitlines()
    assert len(lines) == 20
    assert sorted(int(line.rsplit(" ", 1)[1]) for line in lines) == list(range(20))


def test_write_before_init_raises():
    with pytest.raises(RuntimeError):
        Log().write_log(Level.INFO, "nothing")


def test_singleton_helpers_respect_close_log(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    log = get_instance()
    assert get_instance() is log
    log.init(f"{tmp_path}/quiet", 1)
    log_info("hidden")
    log.close()
    files = list(tmp_path.glob("*quiet"))
    assert len(files) == 1
    assert files[0].read_text() == ""

    log.init(f"{tmp_path}/loud", 0)
    log_error("shown")
    log.close()
    loud = list(tmp_path.glob("*loud"))
    assert loud[0].read_text().endswith("[erro]: shown\n")