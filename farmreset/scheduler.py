from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

LOG = logging.getLogger("farmreset.scheduler")

Callback = Callable[[], None]


@dataclass
class TimerHandle:
    name: str
    interval: Optional[float] = None
    _cancelled: bool = field(default=False, repr=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Scheduler(Protocol):
    def schedule_repeating(self, interval: float, fn: Callback, *, name: str = "") -> TimerHandle: ...

    def schedule_once(self, delay: float, fn: Callback, *, name: str = "") -> TimerHandle: ...


@dataclass(order=True)
class _Entry:
    deadline: float
    seq: int
    handle: TimerHandle = field(compare=False)
    fn: Callback = field(compare=False, repr=False)


class ThreadScheduler:
    """Runs every timer callback on one worker thread, one at a time.

    Deadlines are measured on the monotonic clock, so a wall-clock change does
    not shift countdown offsets. A callback that raises is logged and the loop
    keeps going.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, lock: Optional[threading.RLock] = None) -> None:
        self._clock = clock
        self.lock = lock or threading.RLock()
        self._heap: list[_Entry] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._thread = threading.Thread(target=self._worker_loop, name="farmreset-scheduler", daemon=True)
        self._started = False
        self._stopping = False

    def start(self) -> None:
        if self._started:
            return
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        self._thread.join(timeout=5)
        self._started = False

    def schedule_once(self, delay: float, fn: Callback, *, name: str = "") -> TimerHandle:
        handle = TimerHandle(name=name or getattr(fn, "__name__", "task"))
        self._push(self._clock() + max(0.0, delay), handle, fn)
        return handle

    def schedule_repeating(self, interval: float, fn: Callback, *, name: str = "") -> TimerHandle:
        if interval <= 0:
            raise ValueError("Repeating interval must be positive")
        handle = TimerHandle(name=name or getattr(fn, "__name__", "task"), interval=interval)
        self._push(self._clock(), handle, fn)
        return handle

    def _push(self, deadline: float, handle: TimerHandle, fn: Callback) -> None:
        with self._cond:
            heapq.heappush(self._heap, _Entry(deadline, next(self._seq), handle, fn))
            self._cond.notify_all()

    def _next_due(self) -> Optional[_Entry]:
        with self._cond:
            while not self._stopping:
                if not self._heap:
                    self._cond.wait()
                    continue
                head = self._heap[0]
                if head.handle.cancelled:
                    heapq.heappop(self._heap)
                    continue
                wait = head.deadline - self._clock()
                if wait > 0:
                    self._cond.wait(timeout=wait)
                    continue
                return heapq.heappop(self._heap)
        return None

    def _worker_loop(self) -> None:
        while True:
            entry = self._next_due()
            if entry is None:
                return
            try:
                with self.lock:
                    entry.fn()
            except Exception:  # noqa: BLE001
                LOG.exception("Scheduled task %s failed", entry.handle.name)
            interval = entry.handle.interval
            if interval is not None and not entry.handle.cancelled:
                with self._cond:
                    heapq.heappush(
                        self._heap,
                        _Entry(entry.deadline + interval, next(self._seq), entry.handle, entry.fn),
                    )
