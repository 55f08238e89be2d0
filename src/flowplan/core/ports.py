# src/flowplan/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the planner core.

The coordinator and the periodic services depend on Protocols instead of concrete
implementations, so storage and alert/display adapters stay swappable in tests.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..plan.models import DayPlan, Task
    from ..plan.timer import TimerTransition


class PlanRepo(Protocol):
    """Day-keyed storage: "YYYY-MM-DD" -> DayPlan."""

    def load_plan(self, day_key: str) -> DayPlan | None: ...
    def save_plan(self, plan: DayPlan) -> None: ...
    def list_day_keys(self) -> list[str]: ...
    def delete_plan(self, day_key: str) -> None: ...


class CompletionNotifier(Protocol):
    """
    Alert side of a finished timer (sound, desktop popup, console line...).

    Called after the state transition has been applied.
    """

    def timer_finished(self, task: Task, transition: TimerTransition) -> None: ...


class DisplaySink(Protocol):
    """Receives non-authoritative display samples (task id or None, seconds left)."""

    def show(self, task_id: str | None, remaining_seconds: float) -> None: ...
