"""Cancellable timers that run their callbacks under one shared lock."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, timer: Optional[threading.Timer] = None) -> None:
        self._timer = timer
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()


class ThreadingScheduler:
    """``threading.Timer`` based scheduler.

    Engine event handlers take ``lock`` as well, so a timer callback and an
    engine callback never run at the same time. A handle cancelled while its
    timer thread is already waiting on the lock is skipped.
    """

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self.lock = lock or threading.RLock()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()

        def _run() -> None:
            with self.lock:
                if handle.cancelled:
                    return
                handle.cancelled = True
                try:
                    callback()
                except Exception:
                    logger.exception("Timer callback %r failed", callback)

        timer = threading.Timer(max(0.0, delay_s), _run)
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle
