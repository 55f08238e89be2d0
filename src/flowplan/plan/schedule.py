# src/flowplan/plan/schedule.py

from __future__ import annotations

"""
Schedule recalculation.

A single left-to-right pass assigns every task a start time:
- the cursor starts at the plan start (or now),
- "HH:MM" anchors pull the cursor forward (gap) or compress the task right
  before them (plan running late),
- an active task running past its planned end pushes the rest of the plan to now.

start_time is always derived here; nothing else should write it.
"""

import logging
import math
import re
from collections.abc import Sequence
from datetime import date, datetime
from datetime import time as dt_time

from .models import Task, TaskStatus

logger = logging.getLogger(__name__)

ANCHOR_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_anchor(raw: str) -> tuple[int, int]:
    """Parse an "HH:MM" time of day. Raises ValueError on bad format or range."""
    m = ANCHOR_RE.match(raw or "")
    if not m:
        raise ValueError(f"anchor must look like HH:MM, got {raw!r}")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"anchor out of range: {raw!r}")
    return hour, minute


def normalize_anchor(raw: str) -> str:
    hour, minute = parse_anchor(raw)
    return f"{hour:02d}:{minute:02d}"


def resolve_anchor(raw: str, reference_date: date) -> float:
    """Anchor as a local timestamp on reference_date."""
    hour, minute = parse_anchor(raw)
    return datetime.combine(reference_date, dt_time(hour, minute)).timestamp()


def _effective_end(task: Task, active_task_id: str | None, now_ts: float) -> float:
    if task.id == active_task_id and now_ts > task.end_time:
        return now_ts
    return task.end_time


def _compress_previous(
    prev: Task, anchor_ts: float, active_task_id: str | None, now_ts: float
) -> float:
    """
    Shrink prev so it ends by anchor_ts and return the new cursor.

    The overrun is measured from prev's planned end, not from the cursor, so an
    active task running late pushes the anchored task to now_ts without losing
    stored minutes. Completed tasks keep their snapped duration.
    """
    if prev.is_completed or prev.end_time <= anchor_ts:
        return max(anchor_ts, _effective_end(prev, active_task_id, now_ts))

    overrun_minutes = math.ceil((prev.end_time - anchor_ts) / 60)
    if prev.duration > overrun_minutes:
        prev.duration -= overrun_minutes
        return max(anchor_ts, _effective_end(prev, active_task_id, now_ts))
    prev.duration = 0
    return _effective_end(prev, active_task_id, now_ts)


def recalculate(
    tasks: Sequence[Task],
    active_task_id: str | None,
    now_ts: float,
    plan_start_ts: float | None = None,
    reference_date: date | None = None,
    *,
    completed_task_id: str | None = None,
    actual_end_ts: float | None = None,
) -> list[Task]:
    """
    Return copies of tasks with start times (and compressed durations) assigned.

    The input sequence is not modified. Identical inputs give identical output.
    completed_task_id/actual_end_ts describe a completion that just happened; the
    completed task's duration has already been snapped to the real elapsed time,
    so the pass rebases later tasks through that duration.
    """
    out = [t.copy() for t in tasks]

    cursor = float(plan_start_ts if plan_start_ts is not None else now_ts)
    if reference_date is None:
        reference_date = datetime.fromtimestamp(cursor).date()

    if completed_task_id is not None:
        logger.debug(
            "Recalculating after completion task=%s actual_end=%s", completed_task_id, actual_end_ts
        )

    for i, task in enumerate(out):
        if task.anchored_start_time:
            try:
                anchor_ts = resolve_anchor(task.anchored_start_time, reference_date)
            except ValueError:
                logger.warning(
                    "Ignoring malformed anchor %r on task %s", task.anchored_start_time, task.id
                )
                anchor_ts = None

            if anchor_ts is not None:
                if cursor > anchor_ts:
                    if i > 0:
                        prev = out[i - 1]
                        cursor = _compress_previous(prev, anchor_ts, active_task_id, now_ts)
                        logger.debug(
                            "Anchor %s on task %s compressed task %s to %sm",
                            task.anchored_start_time,
                            task.id,
                            prev.id,
                            prev.duration,
                        )
                else:
                    cursor = anchor_ts

        task.start_time = cursor
        cursor = _effective_end(task, active_task_id, now_ts)

    return out


def is_late(task: Task, active_task_id: str | None, now_ts: float) -> bool:
    """Derived "running late" flag; never stored on the task."""
    return (
        task.status != TaskStatus.COMPLETED
        and task.id == active_task_id
        and now_ts > task.end_time
    )
