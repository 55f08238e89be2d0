# src/flowplan/connectors/console_connector.py

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..plan.models import Task, TimerMode
from ..plan.timer import TimerTransition

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleNotifier:
    """Completion alert as a console line (sound/popups are someone else's job)."""

    def timer_finished(self, task: Task, transition: TimerTransition) -> None:
        if transition.finished_mode == TimerMode.POMO:
            what = f"Pomodoro #{transition.completed_pomodoros} done"
        else:
            what = "Break over"
        follow = "started" if transition.auto_started else "ready (/toggle to start)"
        _print_ts(f"[TIMER] {task.title}: {what}. Next: {transition.next_mode.value} {follow}.")


class LatestReadout:
    """DisplaySink that keeps the most recent sample for /timer."""

    def __init__(self, *, max_age_seconds: float = 1.0) -> None:
        self._lock = threading.Lock()
        self._max_age = max_age_seconds
        self._task_id: str | None = None
        self._remaining = 0.0
        self._sampled_at = 0.0

    def show(self, task_id: str | None, remaining_seconds: float) -> None:
        with self._lock:
            self._task_id = task_id
            self._remaining = remaining_seconds
            self._sampled_at = time.monotonic()

    def latest(self, task_id: str) -> float | None:
        """Last sample for task_id, or None if there is no fresh one."""
        with self._lock:
            if self._task_id != task_id:
                return None
            if time.monotonic() - self._sampled_at > self._max_age:
                return None
            return self._remaining


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type a task title to add it. Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for multi-step commands.
        _print_ts(text)

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        # Plain text adds a task with the default duration.
        line = user_input if user_input.startswith("/") else f"/add {user_input}"

        try:
            response = command_registry.handle(state, line, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is not None:
            _print_ts(response)

    logger.info("Console connector finished.")
