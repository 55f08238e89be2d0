# src/flowplan/plan/stats.py

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .models import Task, TimerSettings


@dataclass(slots=True, frozen=True)
class PlanStats:
    pomodoros_expected: int
    pomodoros_completed: int
    productivity_percent: int
    focused_minutes: int
    planned_minutes: int
    tasks_total: int
    tasks_completed: int


def summarize(tasks: Sequence[Task], settings: TimerSettings) -> PlanStats:
    """Daily productivity numbers: completed vs expected pomodoros, focus time."""
    expected = sum(t.expected_pomodoros for t in tasks)
    completed = sum(t.completed_pomodoros for t in tasks)
    productivity = round(completed / expected * 100) if expected > 0 else 0
    return PlanStats(
        pomodoros_expected=expected,
        pomodoros_completed=completed,
        productivity_percent=int(productivity),
        focused_minutes=completed * settings.pomodoro_duration,
        planned_minutes=sum(t.duration for t in tasks),
        tasks_total=len(tasks),
        tasks_completed=sum(1 for t in tasks if t.is_completed),
    )
