# src/flowplan/plan/timer.py

from __future__ import annotations

"""
Pomodoro timer state machine.

The remainder is reconstructed from two timestamps instead of being decremented
per tick, so a throttled loop, a sleeping machine or a missed tick never skews it:

    live_remaining = remaining_seconds - (now - last_started_at)

Only finish_timer/skip_timer change the mode. The display sampler reads
display_remaining() and must never transition state.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .models import POMODOROS_PER_LONG_BREAK, Task, TimerData, TimerMode, TimerSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TimerTransition:
    """What a finish/skip did (for notifications)."""

    task_id: str
    finished_mode: TimerMode
    next_mode: TimerMode
    auto_started: bool
    completed_pomodoros: int


def live_remaining(timer: TimerData, now_ts: float) -> float:
    if timer.is_running and timer.last_started_at is not None:
        return timer.remaining_seconds - (now_ts - timer.last_started_at)
    return timer.remaining_seconds


def pause_timer(timer: TimerData, now_ts: float) -> None:
    """Fold the elapsed run time into remaining_seconds and stop (in place)."""
    if not timer.is_running:
        return
    started = timer.last_started_at if timer.last_started_at is not None else now_ts
    timer.remaining_seconds = max(0.0, timer.remaining_seconds - (now_ts - started))
    timer.is_running = False
    timer.last_started_at = None


def toggle_timer(tasks: Sequence[Task], task_id: str, now_ts: float) -> list[Task]:
    """
    Start/resume or pause the timer of task_id.

    Any other running timer is paused first: one running timer at a time.
    """
    out = [t.copy() for t in tasks]
    target = next((t for t in out if t.id == task_id), None)
    if target is None:
        logger.debug("toggle_timer: unknown task %s", task_id)
        return out

    for t in out:
        if t is not target and t.timer.is_running:
            pause_timer(t.timer, now_ts)
            logger.debug("Paused timer of task %s (another timer started)", t.id)

    if target.timer.is_running:
        pause_timer(target.timer, now_ts)
        logger.info("Timer paused task=%s remaining=%.1fs", target.id, target.timer.remaining_seconds)
    else:
        target.timer.is_running = True
        target.timer.last_started_at = now_ts
        logger.info("Timer started task=%s remaining=%.1fs", target.id, target.timer.remaining_seconds)
    return out


def next_mode_after(mode: TimerMode, completed_pomodoros: int) -> TimerMode:
    if mode != TimerMode.POMO:
        return TimerMode.POMO
    if completed_pomodoros % POMODOROS_PER_LONG_BREAK == 0:
        return TimerMode.LONG_BREAK
    return TimerMode.SHORT_BREAK


def finish_with_transition(
    tasks: Sequence[Task], task_id: str, now_ts: float, settings: TimerSettings
) -> tuple[list[Task], TimerTransition | None]:
    """finish_timer that also reports what happened (None for an unknown task)."""
    out = [t.copy() for t in tasks]
    task = next((t for t in out if t.id == task_id), None)
    if task is None:
        return out, None

    finished = task.timer.mode
    if finished == TimerMode.POMO:
        task.completed_pomodoros += 1
        auto_start = settings.auto_start_breaks
    else:
        auto_start = settings.auto_start_pomodoros

    nxt = next_mode_after(finished, task.completed_pomodoros)
    if auto_start:
        for t in out:
            if t is not task and t.timer.is_running:
                pause_timer(t.timer, now_ts)

    task.timer = TimerData(
        remaining_seconds=settings.seconds_for(nxt),
        is_running=auto_start,
        last_started_at=now_ts if auto_start else None,
        mode=nxt,
    )
    logger.info(
        "Timer finished task=%s %s -> %s auto_start=%s pomodoros=%s",
        task.id,
        finished.value,
        nxt.value,
        auto_start,
        task.completed_pomodoros,
    )
    return out, TimerTransition(
        task_id=task.id,
        finished_mode=finished,
        next_mode=nxt,
        auto_started=auto_start,
        completed_pomodoros=task.completed_pomodoros,
    )


def finish_timer(
    tasks: Sequence[Task], task_id: str, now_ts: float, settings: TimerSettings
) -> list[Task]:
    out, _ = finish_with_transition(tasks, task_id, now_ts, settings)
    return out


def skip_timer(
    tasks: Sequence[Task], task_id: str, now_ts: float, settings: TimerSettings
) -> list[Task]:
    """Manual fast-forward: same as finishing now, whatever time is left."""
    out, _ = finish_with_transition(tasks, task_id, now_ts, settings)
    return out


def find_expired(tasks: Sequence[Task], now_ts: float) -> str | None:
    """Id of the running task whose countdown reached zero, if any."""
    for t in tasks:
        if t.timer.is_running and live_remaining(t.timer, now_ts) <= 0:
            return t.id
    return None


def display_remaining(timer: TimerData, now_ts: float) -> float:
    """Visual remainder for rendering. Non-authoritative."""
    return max(0.0, live_remaining(timer, now_ts))


def format_clock(seconds: float) -> str:
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"
