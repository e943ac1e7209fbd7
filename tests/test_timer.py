from tinywebserver.timer import ClientData, SortTimerList, UtilTimer


def _expires(timers):
    return [t.expire for t in timers]


def test_add_keeps_sorted_order():
    lst = SortTimerList()
    for expire in [30, 10, 20, 5, 25]:
        lst.add_timer(UtilTimer(expire=expire))
    assert _expires(lst) == [5, 10, 20, 25, 30]
    assert len(lst) == 5


def test_add_none_is_ignored():
    lst = SortTimerList()
    lst.add_timer(None)
    assert len(lst) == 0


def test_equal_deadlines_keep_insertion_order():
    lst = SortTimerList()
    first = UtilTimer(expire=10)
    second = UtilTimer(expire=10)
    lst.add_timer(first)
    lst.add_timer(second)
    assert list(lst) == [first, second]


def test_adjust_moves_extended_timer_back():
    lst = SortTimerList()
    timers = [UtilTimer(expire=e) for e in (10, 20, 30)]
    for t in timers:
        lst.add_timer(t)
    timers[0].expire = 25
    lst.adjust_timer(timers[0])
    assert list(lst) == [timers[1], timers[0], timers[2]]


def test_adjust_middle_to_end():
    lst = SortTimerList()
    timers = [UtilTimer(expire=e) for e in (10, 20, 30)]
    for t in timers:
        lst.add_timer(t)
    timers[1].expire = 40
    lst.adjust_timer(timers[1])
    assert list(lst) == [timers[0], timers[2], timers[1]]


def test_adjust_without_overtaking_keeps_place():
    lst = SortTimerList()
    timers = [UtilTimer(expire=e) for e in (10, 20, 30)]
    for t in timers:
        lst.add_timer(t)
    timers[0].expire = 15
    lst.adjust_timer(timers[0])
    assert list(lst) == timers


def test_del_head_tail_middle_and_only():
    lst = SortTimerList()
    timers = [UtilTimer(expire=e) for e in (1, 2, 3, 4)]
    for t in timers:
        lst.add_timer(t)
    lst.del_timer(timers[0])
    lst.del_timer(timers[3])
    lst.del_timer(timers[1])
    assert list(lst) == [timers[2]]
    lst.del_timer(timers[2])
    assert len(lst) == 0


def test_tick_runs_expired_callbacks():
    lst = SortTimerList()
    closed = []
    clients = [ClientData(sockfd=fd) for fd in (7, 8, 9)]
    for expire, client in zip((100, 200, 300), clients):
        timer = UtilTimer(expire=expire, cb_func=lambda d: closed.append(d.sockfd), user_data=client)
        client.timer = timer
        lst.add_timer(timer)
    lst.tick(now=200)
    assert closed == [7, 8]
    assert list(lst) == [clients[2].timer]


def test_tick_before_any_deadline_does_nothing():
    lst = SortTimerList()
    calls = []
    lst.add_timer(UtilTimer(expire=50, cb_func=calls.append))
    lst.tick(now=49)
    assert calls == []
    assert len(lst) == 1


def test_tick_on_empty_list():
    lst = SortTimerList()
    lst.tick(now=1e12)
    assert list(lst) == []