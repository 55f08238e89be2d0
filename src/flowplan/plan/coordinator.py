# src/flowplan/plan/coordinator.py

from __future__ import annotations

"""
Plan coordinator.

Owns one DayPlan at a time and keeps the schedule fresh:
- every structural mutation (add/remove/reorder/update/complete/select) ends with a
  recalculation pass and a save,
- timer events go through the timer state machine (and the notifier on finish).

All operations take the same re-entrant lock: the console mutates from the main
thread while the periodic services tick from a background event loop.
"""

import logging
import math
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from ..core.ports import CompletionNotifier, PlanRepo
from .models import DayPlan, Task, TaskNotFoundError, TaskStatus, TimerSettings, new_task
from .schedule import normalize_anchor, recalculate
from .stats import PlanStats, summarize
from .timer import (
    TimerTransition,
    find_expired,
    finish_with_transition,
    pause_timer,
    toggle_timer,
)

logger = logging.getLogger(__name__)

PlanListener = Callable[[DayPlan], None]

UPDATABLE_FIELDS = frozenset({"title", "duration", "color", "anchored_start_time", "notes"})


@dataclass(slots=True, frozen=True)
class CompletionResult:
    tasks: list[Task]
    next_active_id: str | None


def complete_task(
    tasks: Sequence[Task],
    task_id: str,
    now_ts: float,
    active_task_id: str | None,
    *,
    plan_start_ts: float | None = None,
    reference_date: date | None = None,
) -> CompletionResult:
    """
    Toggle a task between completed and pending.

    pending/active -> completed snaps the duration to the real elapsed time
    (max(1, ceil(minutes since start))), or to 0 if the task had not started yet,
    and clears the active pointer if it pointed here.
    completed -> pending only flips the status back.
    """
    out = [t.copy() for t in tasks]
    task = next((t for t in out if t.id == task_id), None)
    if task is None:
        return CompletionResult(tasks=out, next_active_id=active_task_id)

    if task.is_completed:
        task.status = TaskStatus.PENDING
        updated = recalculate(out, active_task_id, now_ts, plan_start_ts, reference_date)
        return CompletionResult(tasks=updated, next_active_id=active_task_id)

    if task.start_time <= now_ts:
        task.duration = max(1, math.ceil((now_ts - task.start_time) / 60))
    else:
        task.duration = 0
    task.status = TaskStatus.COMPLETED
    pause_timer(task.timer, now_ts)

    next_active = None if task_id == active_task_id else active_task_id
    updated = recalculate(
        out,
        next_active,
        now_ts,
        plan_start_ts,
        reference_date,
        completed_task_id=task_id,
        actual_end_ts=now_ts,
    )
    return CompletionResult(tasks=updated, next_active_id=next_active)


def day_key_for(ts: float) -> str:
    return datetime.fromtimestamp(ts).date().isoformat()


class PlanCoordinator:
    def __init__(
        self,
        repo: PlanRepo,
        settings: TimerSettings,
        *,
        notifier: CompletionNotifier | None = None,
        clock: Callable[[], float] = time.time,
        day_key: str | None = None,
        default_duration: int | None = None,
    ) -> None:
        self._repo = repo
        self._settings = settings
        self._notifier = notifier
        self._clock = clock
        self._default_duration = (
            default_duration if default_duration and default_duration > 0 else settings.pomodoro_duration
        )
        self._lock = threading.RLock()
        self._listeners: list[PlanListener] = []
        self._plan = self._load(day_key or day_key_for(clock()))

    # ---- internals ----

    def _load(self, day_key: str) -> DayPlan:
        date.fromisoformat(day_key)
        plan = self._repo.load_plan(day_key)
        if plan is None:
            plan = DayPlan(day_key=day_key)
        logger.info("Plan loaded day=%s tasks=%d", day_key, len(plan.tasks))
        return plan

    def _reference_date(self) -> date:
        return date.fromisoformat(self._plan.day_key)

    def _recalculate(
        self,
        now_ts: float,
        *,
        completed_task_id: str | None = None,
        actual_end_ts: float | None = None,
    ) -> None:
        self._plan.tasks = recalculate(
            self._plan.tasks,
            self._plan.active_task_id,
            now_ts,
            self._plan.plan_start_ts,
            self._reference_date(),
            completed_task_id=completed_task_id,
            actual_end_ts=actual_end_ts,
        )

    def _require(self, task_id: str) -> Task:
        task = self._plan.find(task_id)
        if task is None:
            raise TaskNotFoundError(f"no task with id {task_id!r}")
        return task

    def _require_index(self, index: int) -> None:
        if not 0 <= index < len(self._plan.tasks):
            raise TaskNotFoundError(f"no task at position {index}")

    def _commit(self) -> DayPlan:
        self._repo.save_plan(self._plan)
        return self._plan.copy()

    def _emit(self, snapshot: DayPlan) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Plan listener failed")

    # ---- readers ----

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    @property
    def default_duration(self) -> int:
        return self._default_duration

    def now(self) -> float:
        return self._clock()

    def snapshot(self) -> DayPlan:
        with self._lock:
            return self._plan.copy()

    def active_task(self) -> Task | None:
        with self._lock:
            task = self._plan.find(self._plan.active_task_id)
            return task.copy() if task is not None else None

    def task_at(self, index: int) -> Task:
        with self._lock:
            self._require_index(index)
            return self._plan.tasks[index].copy()

    def stats(self) -> PlanStats:
        with self._lock:
            return summarize(self._plan.tasks, self._settings)

    def add_listener(self, listener: PlanListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PlanListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ---- structural mutations ----

    def add_task(
        self,
        title: str,
        duration: int | None = None,
        *,
        index: int | None = None,
        color: str | None = None,
        anchor: str | None = None,
        notes: str | None = None,
    ) -> Task:
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        if duration is None:
            duration = self._default_duration
        if duration < 0:
            raise ValueError("duration must be >= 0")
        anchor = normalize_anchor(anchor) if anchor else None

        with self._lock:
            if index is not None and not 0 <= index <= len(self._plan.tasks):
                raise TaskNotFoundError(f"no insert position {index}")
            now = self._clock()
            if not self._plan.tasks and self._plan.plan_start_ts is None:
                self._plan.plan_start_ts = now

            task = new_task(
                title,
                int(duration),
                self._settings,
                color=color,
                anchored_start_time=anchor,
                notes=notes,
            )
            pos = len(self._plan.tasks) if index is None else index
            self._plan.tasks.insert(pos, task)
            self._recalculate(now)
            logger.info("Task added id=%s duration=%sm pos=%s", task.id, duration, pos)
            added = self._require(task.id).copy()
            snapshot = self._commit()
        self._emit(snapshot)
        return added

    def remove_task(self, task_id: str) -> None:
        with self._lock:
            idx = self._plan.index_of(task_id)
            if idx < 0:
                raise TaskNotFoundError(f"no task with id {task_id!r}")
            del self._plan.tasks[idx]
            if self._plan.active_task_id == task_id:
                self._plan.active_task_id = None
            if not self._plan.tasks:
                self._plan.plan_start_ts = None
            self._recalculate(self._clock())
            logger.info("Task removed id=%s", task_id)
            snapshot = self._commit()
        self._emit(snapshot)

    def reorder(self, from_index: int, to_index: int) -> None:
        with self._lock:
            self._require_index(from_index)
            self._require_index(to_index)
            if from_index == to_index:
                return
            moved = self._plan.tasks.pop(from_index)
            self._plan.tasks.insert(to_index, moved)
            self._recalculate(self._clock())
            logger.info("Task moved id=%s %s -> %s", moved.id, from_index, to_index)
            snapshot = self._commit()
        self._emit(snapshot)

    def update_task(self, task_id: str, **fields: Any) -> Task:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update field(s): {', '.join(sorted(unknown))}")
        if "title" in fields and not str(fields["title"] or "").strip():
            raise ValueError("title is required")
        if "duration" in fields and int(fields["duration"]) < 0:
            raise ValueError("duration must be >= 0")
        if "anchored_start_time" in fields:
            raw = fields["anchored_start_time"]
            fields["anchored_start_time"] = normalize_anchor(raw) if raw else None

        with self._lock:
            task = self._require(task_id)
            if "title" in fields:
                task.title = str(fields["title"]).strip()
            if "duration" in fields:
                task.duration = int(fields["duration"])
                task.expected_pomodoros = self._settings.expected_pomodoros(task.duration)
            if "color" in fields:
                task.color = fields["color"] or task.color
            if "anchored_start_time" in fields:
                task.anchored_start_time = fields["anchored_start_time"]
            if "notes" in fields:
                task.notes = fields["notes"]

            self._recalculate(self._clock())
            logger.info("Task updated id=%s fields=%s", task_id, ",".join(sorted(fields)))
            updated = self._require(task_id).copy()
            snapshot = self._commit()
        self._emit(snapshot)
        return updated

    def complete(self, task_id: str) -> Task:
        with self._lock:
            self._require(task_id)
            now = self._clock()
            result = complete_task(
                self._plan.tasks,
                task_id,
                now,
                self._plan.active_task_id,
                plan_start_ts=self._plan.plan_start_ts,
                reference_date=self._reference_date(),
            )
            self._plan.tasks = result.tasks
            self._plan.active_task_id = result.next_active_id
            task = self._require(task_id).copy()
            logger.info("Task %s -> %s duration=%sm", task_id, task.status.value, task.duration)
            snapshot = self._commit()
        self._emit(snapshot)
        return task

    def select(self, task_id: str) -> Task:
        with self._lock:
            task = self._require(task_id)
            if task.is_completed:
                raise ValueError("cannot select a completed task")

            previous = self._plan.find(self._plan.active_task_id)
            if previous is not None and previous.id != task_id and previous.status == TaskStatus.ACTIVE:
                previous.status = TaskStatus.PENDING

            task.status = TaskStatus.ACTIVE
            self._plan.active_task_id = task_id
            self._recalculate(self._clock())
            logger.info("Task selected id=%s", task_id)
            selected = self._require(task_id).copy()
            snapshot = self._commit()
        self._emit(snapshot)
        return selected

    def clear_completed(self) -> int:
        with self._lock:
            before = len(self._plan.tasks)
            self._plan.tasks = [t for t in self._plan.tasks if not t.is_completed]
            removed = before - len(self._plan.tasks)
            if not self._plan.tasks:
                self._plan.plan_start_ts = None
            self._recalculate(self._clock())
            logger.info("Cleared %d completed task(s)", removed)
            snapshot = self._commit()
        self._emit(snapshot)
        return removed

    def clear_all(self) -> None:
        with self._lock:
            self._plan.tasks = []
            self._plan.active_task_id = None
            self._plan.plan_start_ts = None
            logger.info("Plan cleared day=%s", self._plan.day_key)
            snapshot = self._commit()
        self._emit(snapshot)

    def set_plan_start(self, ts: float | None) -> None:
        with self._lock:
            self._plan.plan_start_ts = ts
            self._recalculate(self._clock())
            snapshot = self._commit()
        self._emit(snapshot)

    def switch_day(self, day_key: str) -> DayPlan:
        with self._lock:
            self._repo.save_plan(self._plan)
            self._plan = self._load(day_key)
            self._recalculate(self._clock())
            snapshot = self._commit()
        self._emit(snapshot)
        return snapshot

    def refresh(self) -> DayPlan:
        """Clock refresh: let passive time (an overrunning active task) show up."""
        with self._lock:
            if not self._plan.tasks:
                return self._plan.copy()
            self._recalculate(self._clock())
            snapshot = self._commit()
        self._emit(snapshot)
        return snapshot

    # ---- timer events ----

    def _timer_target(self, task_id: str | None) -> str:
        target = task_id or self._plan.active_task_id
        if target is None:
            raise TaskNotFoundError("no active task")
        self._require(target)
        return target

    def toggle_timer(self, task_id: str | None = None) -> Task:
        with self._lock:
            target = self._timer_target(task_id)
            self._plan.tasks = toggle_timer(self._plan.tasks, target, self._clock())
            task = self._require(target).copy()
            snapshot = self._commit()
        self._emit(snapshot)
        return task

    def _finish(self, task_id: str, now_ts: float) -> tuple[Task, TimerTransition]:
        tasks, transition = finish_with_transition(self._plan.tasks, task_id, now_ts, self._settings)
        if transition is None:
            raise TaskNotFoundError(f"no task with id {task_id!r}")
        self._plan.tasks = tasks
        return self._require(task_id).copy(), transition

    def finish_timer(self, task_id: str | None = None) -> TimerTransition:
        with self._lock:
            target = self._timer_target(task_id)
            task, transition = self._finish(target, self._clock())
            snapshot = self._commit()
        self._emit(snapshot)
        self._notify(task, transition)
        return transition

    def skip_timer(self, task_id: str | None = None) -> TimerTransition:
        return self.finish_timer(task_id)

    def tick(self) -> TimerTransition | None:
        """
        1 Hz check: finish the running timer if its countdown reached zero.

        The expiry decision and the transition happen under one lock hold, so a
        decision based on an older timer state is never applied.
        """
        with self._lock:
            now = self._clock()
            expired = find_expired(self._plan.tasks, now)
            if expired is None:
                return None
            task, transition = self._finish(expired, now)
            snapshot = self._commit()
        self._emit(snapshot)
        self._notify(task, transition)
        return transition

    def _notify(self, task: Task, transition: TimerTransition) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.timer_finished(task, transition)
        except Exception:
            logger.exception("Completion notifier failed task_id=%s", task.id)
