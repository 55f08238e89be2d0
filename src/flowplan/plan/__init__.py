"""
Planner core.

Components:
- models.py: data structures (Task, TimerData, TimerSettings, DayPlan)
- schedule.py: start-time recalculation (anchors, compression, overrun)
- timer.py: pomodoro timer state machine (timestamp-delta)
- coordinator.py: completion snapping + PlanCoordinator (mutations -> recalculation)
- plan_store.py: day-keyed repositories (in-memory, SQLite)
- services.py: clock refresh, 1 Hz ticker, display sampler
- stats.py: daily productivity summary
"""

from .coordinator import CompletionResult, PlanCoordinator, complete_task
from .models import DayPlan, Task, TaskStatus, TimerData, TimerMode, TimerSettings
from .schedule import recalculate
from .timer import finish_timer, skip_timer, toggle_timer

__all__ = [
    "CompletionResult",
    "DayPlan",
    "PlanCoordinator",
    "Task",
    "TaskStatus",
    "TimerData",
    "TimerMode",
    "TimerSettings",
    "complete_task",
    "finish_timer",
    "recalculate",
    "skip_timer",
    "toggle_timer",
]
