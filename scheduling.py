# scheduling.py
"""Cooperative timer tasks.

Everything here runs on one thread. ``ManualScheduler`` never sleeps: its
owner moves time forward with ``advance_to`` (the service does so from an
asyncio background task, tests do so directly) and due callbacks run in
deadline order with the scheduler clock set to their deadline.
"""
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerTask:
    def __init__(self, due_ms: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    def __init__(self, now_ms: int = 0):
        self._now_ms = now_ms
        self._queue: List[Tuple[int, int, TimerTask]] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now_ms

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerTask:
        task = TimerTask(self._now_ms + max(0, int(delay_ms)), callback)
        heapq.heappush(self._queue, (task.due_ms, next(self._seq), task))
        return task

    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)

    def advance_to(self, now_ms: int) -> int:
        """Run every task due at or before ``now_ms``; returns how many ran.

        Time never moves backwards: an earlier ``now_ms`` only runs tasks that
        are already due.
        """
        target = max(self._now_ms, now_ms)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self._now_ms = max(self._now_ms, due)
            task.callback()
            ran += 1
        self._now_ms = target
        return ran

    def advance_by(self, delta_ms: int) -> int:
        return self.advance_to(self._now_ms + delta_ms)


class RefreshTicker:
    """Display tick, re-invokes ``on_tick`` every interval while ``is_active``.

    The tick carries no data; it only tells a view that live durations have
    moved on. It stops itself the first time ``is_active`` is false, so the
    owner calls ``start`` again when viewing resumes.
    """

    def __init__(self, scheduler: ManualScheduler, is_active: Callable[[], bool],
                 on_tick: Callable[[int], None], interval_ms: int = 1000):
        self.scheduler = scheduler
        self.is_active = is_active
        self.on_tick = on_tick
        self.interval_ms = interval_ms
        self._task: Optional[TimerTask] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is None:
            self._task = self.scheduler.call_later(self.interval_ms, self._fire)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _fire(self) -> None:
        if not self.is_active():
            self._task = None
            return
        self._task = self.scheduler.call_later(self.interval_ms, self._fire)
        self.on_tick(self.scheduler.now_ms())
