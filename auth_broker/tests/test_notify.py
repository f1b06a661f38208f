"""Tests for NotificationHub: broadcast to all waiters, no lost wakeups, registration cleanup."""
import threading
import time

from auth_broker.notify import NotificationHub


def test_notify_wakes_every_waiter():
    hub = NotificationHub()
    woken = []
    lock = threading.Lock()
    ready = threading.Barrier(6)

    def waiter(i):
        with hub.subscribe("sid") as sub:
            ready.wait()
            if sub.wait(timeout=5):
                with lock:
                    woken.append(i)

    threads = [threading.Thread(target=waiter, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    ready.wait()
    hub.notify("sid")
    for t in threads:
        t.join(timeout=5)
    assert sorted(woken) == [0, 1, 2, 3, 4]


def test_subscribe_after_notify_does_not_block():
    hub = NotificationHub()
    hub.notify("sid")
    sub = hub.subscribe("sid")
    start = time.monotonic()
    assert sub.wait(timeout=5) is True
    assert time.monotonic() - start < 1
    assert hub.waiter_count("sid") == 0


def test_notify_is_per_session():
    hub = NotificationHub()
    a = hub.subscribe("a")
    b = hub.subscribe("b")
    hub.notify("a")
    assert a.notified
    assert not b.notified


def test_close_releases_registration():
    hub = NotificationHub()
    with hub.subscribe("sid"):
        assert hub.waiter_count("sid") == 1
    assert hub.waiter_count("sid") == 0


def test_timed_out_wait_returns_false():
    hub = NotificationHub()
    with hub.subscribe("sid") as sub:
        assert sub.wait(timeout=0.05) is False


def test_repeated_notify_is_noop():
    hub = NotificationHub()
    sub = hub.subscribe("sid")
    hub.notify("sid")
    hub.notify("sid")
    assert sub.notified
    assert hub.waiter_count("sid") == 0


def test_discard_wakes_waiters_and_forgets_resolution():
    hub = NotificationHub()
    hub.notify("old")
    sub = hub.subscribe("pending")
    hub.discard("pending")
    hub.discard("old")
    assert sub.notified
    assert not hub.subscribe("old").notified
