"""Time sources and delayed-callback primitives.

Services never read the wall clock or start timers directly; they go through
a ``Clock`` so tests can drive a simulated timeline with ``ManualClock``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(ABC):
    """Source of "now" plus a one-shot delayed-callback facility."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""

    @abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds, only meaningful as differences."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds unless canceled."""

    def start(self) -> None:
        """Begin running delayed callbacks."""

    def shutdown(self) -> None:
        """Stop running delayed callbacks; pending ones are dropped."""


class _JobHandle:
    def __init__(self, job: Job) -> None:
        self._job = job

    def cancel(self) -> None:
        try:
            self._job.remove()
        except JobLookupError:
            # Already ran or removed
            pass


class SystemClock(Clock):
    """Real time; delayed callbacks are one-shot APScheduler date jobs.

    Jobs added before ``start`` are queued and run once the scheduler starts.
    Late jobs still run (no misfire grace limit), so an overloaded process
    delivers escalations late rather than dropping them.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        job = self._scheduler.add_job(
            callback,
            "date",
            run_date=self.now() + timedelta(seconds=max(delay, 0.0)),
            misfire_grace_time=None,
        )
        return _JobHandle(job)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Timer scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Timer scheduler stopped")


class _ManualTimer:
    def __init__(self, clock: ManualClock, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.canceled = False
        self._clock = clock

    def __lt__(self, other: _ManualTimer) -> bool:
        return (self.due, self.seq) < (other.due, other.seq)

    def cancel(self) -> None:
        self._clock._cancel(self)


class ManualClock(Clock):
    """Simulated clock. Time only moves when ``advance`` is called.

    Due callbacks run on the thread calling ``advance``, in due-time order,
    and never while the clock's own lock is held, so a callback may itself
    schedule or cancel timers.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._elapsed = 0.0
        self._queue: list[_ManualTimer] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        with self._lock:
            return self._elapsed

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        with self._lock:
            timer = _ManualTimer(self, self._elapsed + max(delay, 0.0), next(self._seq), callback)
            heapq.heappush(self._queue, timer)
            return timer

    def _cancel(self, timer: _ManualTimer) -> None:
        with self._lock:
            timer.canceled = True

    @property
    def pending(self) -> int:
        with self._lock:
            return sum(1 for t in self._queue if not t.canceled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that comes due on the way."""
        with self._lock:
            target = self._elapsed + seconds
        while True:
            with self._lock:
                while self._queue and self._queue[0].canceled:
                    heapq.heappop(self._queue)
                if not self._queue or self._queue[0].due > target:
                    self._elapsed = max(self._elapsed, target)
                    return
                timer = heapq.heappop(self._queue)
                self._elapsed = max(self._elapsed, timer.due)
            timer.callback()


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
