from __future__ import annotations

import threading

import pytest

from farmreset.scheduler import ThreadScheduler


@pytest.fixture()
def thread_scheduler():
    scheduler = ThreadScheduler()
    scheduler.start()
    yield scheduler
    scheduler.stop()


def test_schedule_once_runs_after_delay(thread_scheduler):
    done = threading.Event()
    thread_scheduler.schedule_once(0.05, done.set)
    assert done.wait(timeout=2)


def test_callbacks_run_in_deadline_order(thread_scheduler):
    order: list[str] = []
    finished = threading.Event()
    thread_scheduler.schedule_once(0.10, lambda: (order.append("late"), finished.set()))
    thread_scheduler.schedule_once(0.02, lambda: order.append("early"))

    assert finished.wait(timeout=2)
    assert order == ["early", "late"]


def test_cancelled_timer_never_runs(thread_scheduler):
    fired = threading.Event()
    sentinel = threading.Event()
    handle = thread_scheduler.schedule_once(0.05, fired.set)
    handle.cancel()
    thread_scheduler.schedule_once(0.10, sentinel.set)

    assert sentinel.wait(timeout=2)
    assert not fired.is_set()


def test_failing_callback_does_not_stop_loop(thread_scheduler):
    after = threading.Event()

    def boom():
        raise RuntimeError("boom")

    thread_scheduler.schedule_once(0.01, boom)
    thread_scheduler.schedule_once(0.05, after.set)
    assert after.wait(timeout=2)


def test_repeating_timer_until_cancelled(thread_scheduler):
    ticks: list[int] = []
    third = threading.Event()

    def tick():
        ticks.append(len(ticks))
        if len(ticks) == 3:
            third.set()

    handle = thread_scheduler.schedule_repeating(0.02, tick)
    assert third.wait(timeout=2)
    handle.cancel()
    count = len(ticks)
    thread_scheduler.schedule_once(0.1, lambda: None)
    assert len(ticks) <= count + 1


def test_repeating_interval_must_be_positive():
    with pytest.raises(ValueError):
        ThreadScheduler().schedule_repeating(0, lambda: None)
