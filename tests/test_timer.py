"""Tests for the retransmission timer."""

from conftest import FakeLoop
from pxedhcp.dhcp.timer import RetryTimer


def make_timer(**kwargs):
    loop = FakeLoop()
    fired = []
    timer = RetryTimer(loop, fired.append, **kwargs)
    return loop, timer, fired


def test_start_nodelay_fires_without_counting():
    loop, timer, fired = make_timer()

    timer.start_nodelay()
    assert timer.running
    loop.advance(0)

    assert fired == [False]
    assert timer.attempts == 0
    assert not timer.running


def test_timeouts_double_up_to_maximum():
    loop, timer, fired = make_timer(min_timeout=1.0, max_timeout=5.0, max_attempts=10)
    delays = []

    for _ in range(5):
        delays.append(timer.timeout)
        timer.start()
        loop.run_until_idle()

    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_fail_reported_after_max_attempts():
    loop, timer, fired = make_timer(max_attempts=3)

    for _ in range(3):
        timer.start()
        loop.run_until_idle()

    assert fired == [False, False, True]


def test_stop_cancels_and_resets():
    loop, timer, fired = make_timer(min_timeout=0.5)
    timer.start()
    timer.start()

    timer.stop()
    loop.run_until_idle()

    assert fired == []
    assert timer.attempts == 0
    assert timer.timeout == 0.5
    assert not timer.running


def test_restart_replaces_pending_expiry():
    loop, timer, fired = make_timer()

    timer.start_nodelay()
    timer.start()
    loop.run_until_idle()

    assert fired == [False]
    assert len(loop.pending()) == 0
