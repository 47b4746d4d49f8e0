"""Escalation scheduler: one-shot deferred escalation per alert.

The scheduler only knows how to run a callback once after a delay. It does
not decide whether escalation is still wanted; the callback re-checks the
alert through the store's guarded transition, so a disarm that loses the
race to a firing timer is harmless.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable

from smartsos.core.clock import Clock, TimerHandle

logger = logging.getLogger(__name__)


class TaskState(str, enum.Enum):
    ARMED = "ARMED"
    FIRED = "FIRED"
    DISARMED = "DISARMED"


class EscalationTask:
    """Handle for one armed escalation. Armed -> Fired or Armed -> Disarmed."""

    def __init__(self, alert_id: str, due_at: float) -> None:
        self.alert_id = alert_id
        self.due_at = due_at
        self._state = TaskState.ARMED
        self._lock = threading.Lock()
        self._timer: TimerHandle | None = None

    @property
    def state(self) -> TaskState:
        return self._state

    def _claim(self, target: TaskState) -> bool:
        with self._lock:
            if self._state != TaskState.ARMED:
                return False
            self._state = target
            return True

    def __repr__(self) -> str:
        return f"EscalationTask(alert_id={self.alert_id!r}, state={self._state.value})"


class EscalationScheduler:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._tasks: dict[str, EscalationTask] = {}
        self._tasks_lock = threading.Lock()

    def arm(self, alert_id: str, delay: float, callback: Callable[[str], None]) -> EscalationTask:
        """Run ``callback(alert_id)`` once after ``delay`` seconds unless disarmed.

        Re-arming an alert disarms its previous task first.
        """
        task = EscalationTask(alert_id, self._clock.monotonic() + delay)
        with self._tasks_lock:
            previous = self._tasks.get(alert_id)
            self._tasks[alert_id] = task
        if previous is not None:
            self.disarm(previous)
        task._timer = self._clock.call_later(delay, lambda: self._fire(task, callback))
        logger.info("Escalation armed: alert=%s in %.0fs", alert_id, delay)
        return task

    def disarm(self, task: EscalationTask | None) -> bool:
        """Cancel a pending task. Returns False if it already fired or was disarmed."""
        if task is None or not task._claim(TaskState.DISARMED):
            return False
        if task._timer is not None:
            task._timer.cancel()
        self._forget(task)
        logger.info("Escalation disarmed: alert=%s", task.alert_id)
        return True

    def task_for(self, alert_id: str) -> EscalationTask | None:
        with self._tasks_lock:
            return self._tasks.get(alert_id)

    @property
    def armed_count(self) -> int:
        with self._tasks_lock:
            return sum(1 for t in self._tasks.values() if t.state == TaskState.ARMED)

    def shutdown(self) -> None:
        """Disarm every pending task."""
        with self._tasks_lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            self.disarm(task)

    def _fire(self, task: EscalationTask, callback: Callable[[str], None]) -> None:
        if not task._claim(TaskState.FIRED):
            return
        self._forget(task)
        logger.info("Escalation due: alert=%s", task.alert_id)
        try:
            callback(task.alert_id)
        except Exception:
            logger.exception("Escalation callback failed for alert %s", task.alert_id)

    def _forget(self, task: EscalationTask) -> None:
        with self._tasks_lock:
            if self._tasks.get(task.alert_id) is task:
                del self._tasks[task.alert_id]
