# src/flowplan/plan/models.py

from __future__ import annotations

import math
import secrets
from dataclasses import dataclass, field, replace
from enum import StrEnum

POMODOROS_PER_LONG_BREAK = 4
DEFAULT_COLOR = "indigo"


class TaskStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class TimerMode(StrEnum):
    POMO = "pomo"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @classmethod
    def from_db(cls, raw: str | None) -> TimerMode:
        if not raw:
            return cls.POMO
        try:
            return cls(raw)
        except ValueError:
            return cls.POMO


class TaskNotFoundError(LookupError):
    """Raised by the coordinator for unknown task ids or out-of-range positions."""


@dataclass(frozen=True, slots=True)
class TimerSettings:
    """Timer durations (minutes) and auto-start switches."""

    pomodoro_duration: int = 25
    short_break_duration: int = 5
    long_break_duration: int = 15
    auto_start_breaks: bool = False
    auto_start_pomodoros: bool = False

    def seconds_for(self, mode: TimerMode) -> float:
        if mode == TimerMode.SHORT_BREAK:
            return float(self.short_break_duration * 60)
        if mode == TimerMode.LONG_BREAK:
            return float(self.long_break_duration * 60)
        return float(self.pomodoro_duration * 60)

    def expected_pomodoros(self, duration: int) -> int:
        cycle = max(1, int(self.pomodoro_duration))
        return math.ceil(max(0, duration) / cycle)


@dataclass(slots=True)
class TimerData:
    """
    Persistent per-task countdown.

    remaining_seconds is authoritative only together with last_started_at:
    while running, the live remainder is remaining_seconds - (now - last_started_at).
    """

    remaining_seconds: float
    is_running: bool = False
    last_started_at: float | None = None
    mode: TimerMode = TimerMode.POMO

    @classmethod
    def fresh(cls, settings: TimerSettings) -> TimerData:
        return cls(remaining_seconds=settings.seconds_for(TimerMode.POMO))


@dataclass(slots=True)
class Task:
    id: str
    title: str
    duration: int
    timer: TimerData

    start_time: float = 0.0
    status: TaskStatus = TaskStatus.PENDING
    color: str = DEFAULT_COLOR
    anchored_start_time: str | None = None
    notes: str | None = None

    completed_pomodoros: int = 0
    expected_pomodoros: int = 0

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration * 60

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def copy(self) -> Task:
        return replace(self, timer=replace(self.timer))


@dataclass(slots=True)
class DayPlan:
    """One day's ordered task sequence plus its own active pointer and plan start."""

    day_key: str
    tasks: list[Task] = field(default_factory=list)
    active_task_id: str | None = None
    plan_start_ts: float | None = None

    def index_of(self, task_id: str) -> int:
        for i, t in enumerate(self.tasks):
            if t.id == task_id:
                return i
        return -1

    def find(self, task_id: str | None) -> Task | None:
        if task_id is None:
            return None
        i = self.index_of(task_id)
        return self.tasks[i] if i >= 0 else None

    def copy(self) -> DayPlan:
        return replace(self, tasks=[t.copy() for t in self.tasks])


def generate_task_id() -> str:
    return secrets.token_hex(4)


def new_task(
    title: str,
    duration: int,
    settings: TimerSettings,
    *,
    color: str | None = None,
    anchored_start_time: str | None = None,
    notes: str | None = None,
    task_id: str | None = None,
) -> Task:
    return Task(
        id=task_id or generate_task_id(),
        title=title,
        duration=duration,
        timer=TimerData.fresh(settings),
        color=color or DEFAULT_COLOR,
        anchored_start_time=anchored_start_time,
        notes=notes,
        expected_pomodoros=settings.expected_pomodoros(duration),
    )
