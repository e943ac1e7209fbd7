import threading
import time

import pytest

from tinywebserver.blockqueue import BlockQueue


def test_non_positive_size_rejected():
    with pytest.raises(ValueError):
        BlockQueue(0)
    with pytest.raises(ValueError):
        BlockQueue(-3)


def test_default_max_size():
    assert BlockQueue().max_size() == 1000


def test_fifo_order():
    q = BlockQueue(5)
    for item in ["a", "b", "c"]:
        assert q.push(item) is True
    assert [q.pop(), q.pop(), q.pop()] == ["a", "b", "c"]
    assert q.empty() is True


def test_push_fails_when_full():
    q = BlockQueue(2)
    assert q.push(1)
    assert q.push(2)
    assert q.full() is True
    assert q.push(3) is False
    assert q.size() == 2


def test_front_and_back():
    q = BlockQueue(4)
    q.push("first")
    q.push("last")
    assert q.front() == "first"
    assert q.back() == "last"
    assert q.size() == 2


def test_front_back_on_empty_raise():
    q = BlockQueue(3)
    with pytest.raises(IndexError):
        q.front()
    with pytest.raises(IndexError):
        q.back()


def test_clear_empties_queue():
    q = BlockQueue(3)
    q.push(1)
    q.push(2)
    q.clear()
    assert q.size() == 0
    assert q.empty() is True
    assert q.push(9) is True
    assert q.front() == 9


def test_wrap_around_keeps_order():
    q = BlockQueue(3)
    out = []
    for value in range(10):
        assert q.push(value)
        out.append(q.pop())
    assert out == list(range(10))


def test_pop_times_out_when_empty():
    q = BlockQueue(2)
    with pytest.raises(TimeoutError):
        q.pop(timeout=0.05)


def test_pop_waits_for_producer():
    q = BlockQueue(2)

    def produce():
        time.sleep(0.05)
        q.push("late")

    thread = threading.Thread(target=produce)
    thread.start()
    assert q.pop(timeout=5) == "late"
    thread.join()