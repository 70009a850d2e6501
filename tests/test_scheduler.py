from __future__ import annotations

import threading

from scheduler import ThreadingScheduler, TimerHandle


def test_callback_runs_under_shared_lock() -> None:
    scheduler = ThreadingScheduler()
    fired = threading.Event()
    held: list[bool] = []

    def callback() -> None:
        # RLock acquire from the owning thread succeeds without blocking
        held.append(scheduler.lock.acquire(blocking=False))
        scheduler.lock.release()
        fired.set()

    handle = scheduler.call_later(0.01, callback)

    assert fired.wait(2.0)
    assert held == [True]
    assert handle.cancelled is True


def test_cancelled_handle_never_runs() -> None:
    scheduler = ThreadingScheduler()
    calls: list[int] = []

    with scheduler.lock:
        handle = scheduler.call_later(0.01, lambda: calls.append(1))
        handle.cancel()
        threading.Event().wait(0.1)
    threading.Event().wait(0.1)

    assert calls == []


def test_callback_waits_for_lock_holder() -> None:
    scheduler = ThreadingScheduler()
    order: list[str] = []
    fired = threading.Event()

    def callback() -> None:
        order.append("timer")
        fired.set()

    with scheduler.lock:
        scheduler.call_later(0.0, callback)
        threading.Event().wait(0.1)
        order.append("holder")

    assert fired.wait(2.0)
    assert order == ["holder", "timer"]


def test_failing_callback_is_logged_not_raised() -> None:
    scheduler = ThreadingScheduler()
    fired = threading.Event()

    def broken() -> None:
        fired.set()
        raise RuntimeError("boom")

    scheduler.call_later(0.0, broken)

    assert fired.wait(2.0)


def test_handle_without_timer_can_be_cancelled() -> None:
    handle = TimerHandle()
    handle.cancel()

    assert handle.cancelled is True
