# src/flowplan/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import cast

from ..core.state import AppState
from ..plan.coordinator import day_key_for
from ..plan.models import Task, TaskStatus
from ..plan.schedule import is_late, resolve_anchor
from ..plan.timer import display_remaining, format_clock

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Bad input (ValueError) and unknown tasks (LookupError) become replies.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except (ValueError, LookupError) as e:
            logger.debug("Command /%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _hhmm(ts: float | None) -> str:
    if ts is None:
        return "--:--"
    return datetime.fromtimestamp(ts).strftime("%H:%M")


def _int_arg(raw: str, what: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{what} must be a number, got {raw!r}") from None


def _task_at(state: AppState, raw: str) -> Task:
    """Task by 1-based position as shown by /list."""
    return state.coordinator.task_at(_int_arg(raw, "position") - 1)


def _split_title(args: list[str]) -> tuple[str, str | None]:
    """Pull an optional @HH:MM anchor token out of a title."""
    anchor = None
    words: list[str] = []
    for a in args:
        if a.startswith("@") and len(a) > 1:
            anchor = a[1:]
        else:
            words.append(a)
    return " ".join(words), anchor


def _describe(task: Task) -> str:
    return f"{task.title} ({task.duration}m, {_hhmm(task.start_time)}-{_hhmm(task.end_time)})"


def format_plan(state: AppState) -> str:
    plan = state.coordinator.snapshot()
    if not plan.tasks:
        return f"No tasks planned for {plan.day_key} yet. Add one with /add <minutes> <title>."

    now = state.coordinator.now()
    lines = [f"Plan for {plan.day_key} (start {_hhmm(plan.plan_start_ts)}):"]
    for i, t in enumerate(plan.tasks, start=1):
        if t.status == TaskStatus.COMPLETED:
            mark = "x"
        elif t.id == plan.active_task_id:
            mark = ">"
        else:
            mark = " "
        extra = []
        if t.anchored_start_time:
            extra.append(f"@{t.anchored_start_time}")
        extra.append(f"pomos {t.completed_pomodoros}/{t.expected_pomodoros}")
        if is_late(t, plan.active_task_id, now):
            extra.append("LATE")
        lines.append(
            f"  {i:>2}. [{mark}] {_hhmm(t.start_time)}-{_hhmm(t.end_time)} "
            f"{t.title} ({t.duration}m) {' '.join(extra)}"
        )
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.coordinator.settings
    plan = state.coordinator.snapshot()
    persist = "ON" if getattr(state.settings, "persist", False) else "OFF"
    return (
        "Status:\n"
        f"  Day: {plan.day_key} (plan start {_hhmm(plan.plan_start_ts)})\n"
        f"  Pomodoro/short/long: {s.pomodoro_duration}/{s.short_break_duration}/{s.long_break_duration} min\n"
        f"  Auto-start breaks: {'ON' if s.auto_start_breaks else 'OFF'}, "
        f"pomodoros: {'ON' if s.auto_start_pomodoros else 'OFF'}\n"
        f"  Persistence: {persist}"
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    return format_plan(state)


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <minutes> <title> [@HH:MM]
    /add <title>              -> default duration
    """
    if not args:
        return "Usage: /add <minutes> <title> [@HH:MM]"
    duration = None
    if args[0].isdigit():
        duration = int(args[0])
        args = args[1:]
    title, anchor = _split_title(args)
    task = state.coordinator.add_task(title, duration, anchor=anchor)
    return f"Added: {_describe(task)}"


def cmd_insert(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        return "Usage: /insert <position> <minutes> <title> [@HH:MM]"
    index = _int_arg(args[0], "position") - 1
    duration = _int_arg(args[1], "minutes")
    title, anchor = _split_title(args[2:])
    task = state.coordinator.add_task(title, duration, index=index, anchor=anchor)
    return f"Inserted: {_describe(task)}"


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <position>"
    task = _task_at(state, args[0])
    state.coordinator.remove_task(task.id)
    return f"Removed: {task.title}"


def cmd_mv(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /mv <from> <to>"
    src = _int_arg(args[0], "from") - 1
    dst = _int_arg(args[1], "to") - 1
    state.coordinator.reorder(src, dst)
    return format_plan(state)


def cmd_dur(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /dur <position> <minutes>"
    task = _task_at(state, args[0])
    updated = state.coordinator.update_task(task.id, duration=_int_arg(args[1], "minutes"))
    return f"Updated: {_describe(updated)}, {updated.expected_pomodoros} pomodoro(s)"


def cmd_rename(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /rename <position> <title>"
    task = _task_at(state, args[0])
    updated = state.coordinator.update_task(task.id, title=" ".join(args[1:]))
    return f"Renamed: {updated.title}"


def cmd_anchor(state: AppState, args: list[str]) -> str:
    """
    /anchor <position> HH:MM  -> task must start at HH:MM
    /anchor <position> off    -> remove the anchor
    """
    if len(args) != 2:
        return "Usage: /anchor <position> <HH:MM|off>"
    task = _task_at(state, args[0])
    value = None if args[1].lower() in ("off", "none", "-") else args[1]
    updated = state.coordinator.update_task(task.id, anchored_start_time=value)
    if updated.anchored_start_time is None:
        return f"Anchor removed: {_describe(updated)}"
    return f"Anchored at {updated.anchored_start_time}: {_describe(updated)}"


def cmd_color(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /color <position> <name>"
    task = _task_at(state, args[0])
    updated = state.coordinator.update_task(task.id, color=args[1].lower())
    return f"Color of {updated.title}: {updated.color}"


def cmd_note(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /note <position> [text]"
    task = _task_at(state, args[0])
    text = " ".join(args[1:]).strip() or None
    state.coordinator.update_task(task.id, notes=text)
    return "Note cleared." if text is None else "Note saved."


def cmd_select(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /select <position>"
    task = state.coordinator.select(_task_at(state, args[0]).id)
    return f"Now working on: {_describe(task)}"


def cmd_done(state: AppState, args: list[str]) -> str:
    """
    /done             -> complete the active task
    /done <position>  -> toggle completion of that task
    """
    if args:
        target = _task_at(state, args[0])
    else:
        active = state.coordinator.active_task()
        if active is None:
            return "No active task. Use /done <position>."
        target = active
    task = state.coordinator.complete(target.id)
    if task.status == TaskStatus.COMPLETED:
        return f"Completed: {task.title} ({task.duration}m)"
    return f"Reopened: {task.title}"


def cmd_toggle(state: AppState, args: list[str]) -> str:
    task_id = _task_at(state, args[0]).id if args else None
    task = state.coordinator.toggle_timer(task_id)
    verb = "running" if task.timer.is_running else "paused"
    return f"Timer {verb}: {task.title} [{task.timer.mode.value}] {format_clock(task.timer.remaining_seconds)}"


def cmd_skip(state: AppState, args: list[str]) -> str:
    task_id = _task_at(state, args[0]).id if args else None
    transition = state.coordinator.skip_timer(task_id)
    return f"Skipped {transition.finished_mode.value} -> {transition.next_mode.value}"


def cmd_timer(state: AppState, args: list[str]) -> str:
    task = state.coordinator.active_task()
    if task is None:
        return "No active task. Use /select <position>."
    sample = state.readout.latest(task.id) if state.readout is not None else None
    remaining = sample if sample is not None else display_remaining(task.timer, state.coordinator.now())
    verb = "running" if task.timer.is_running else "paused"
    return (
        f"{task.title}: {task.timer.mode.value} {format_clock(remaining)} ({verb}), "
        f"pomodoros {task.completed_pomodoros}/{task.expected_pomodoros}"
    )


def cmd_start(state: AppState, args: list[str]) -> str:
    """
    /start HH:MM  -> plan starts at HH:MM on the plan's day
    /start now    -> plan starts now
    /start off    -> plan follows the clock
    """
    if len(args) != 1:
        return "Usage: /start <HH:MM|now|off>"
    arg = args[0].lower()
    if arg == "off":
        ts = None
    elif arg == "now":
        ts = state.coordinator.now()
    else:
        ts = resolve_anchor(arg, date.fromisoformat(state.coordinator.snapshot().day_key))
    state.coordinator.set_plan_start(ts)
    return format_plan(state)


def cmd_stats(state: AppState, args: list[str]) -> str:
    st = state.coordinator.stats()
    hours, minutes = divmod(st.focused_minutes, 60)
    return (
        "Daily productivity:\n"
        f"  {st.productivity_percent}% ({st.pomodoros_completed}/{st.pomodoros_expected} pomodoros)\n"
        f"  Time focused: {hours}h {minutes:02d}m\n"
        f"  Tasks done: {st.tasks_completed}/{st.tasks_total}, planned {st.planned_minutes}m"
    )


def cmd_clear(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /clear done  -> drop completed tasks
    /clear all   -> empty the plan
    """
    sub = args[0].lower() if args else ""
    if sub == "done":
        removed = state.coordinator.clear_completed()
        return f"Removed {removed} completed task(s)."
    if sub == "all":
        if emit:
            emit("Clearing every task of this day...")
        state.coordinator.clear_all()
        return "Plan cleared."
    return "Usage: /clear done | /clear all"


def cmd_day(state: AppState, args: list[str]) -> str:
    if not args or args[0].lower() == "today":
        key = day_key_for(state.coordinator.now())
    else:
        key = date.fromisoformat(args[0]).isoformat()
    state.coordinator.switch_day(key)
    return format_plan(state)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show current settings (day/timer/persistence).")
registry.register("list", cmd_list, help_text="Show the plan with start times.", aliases=["ls", "l"])
registry.register("add", cmd_add, help_text="Add a task: /add [minutes] <title> [@HH:MM].", aliases=["a"])
registry.register("insert", cmd_insert, help_text="Insert a task: /insert <pos> <minutes> <title>.")
registry.register("rm", cmd_rm, help_text="Remove a task: /rm <pos>.", aliases=["del"])
registry.register("mv", cmd_mv, help_text="Move a task: /mv <from> <to>.")
registry.register("dur", cmd_dur, help_text="Change duration: /dur <pos> <minutes>.")
registry.register("rename", cmd_rename, help_text="Rename a task: /rename <pos> <title>.")
registry.register("anchor", cmd_anchor, help_text="Fix a start time: /anchor <pos> <HH:MM|off>.")
registry.register("color", cmd_color, help_text="Tag a task with a color: /color <pos> <name>.")
registry.register("note", cmd_note, help_text="Attach a note: /note <pos> [text].")
registry.register("select", cmd_select, help_text="Make a task active: /select <pos>.", aliases=["s"])
registry.register("done", cmd_done, help_text="Complete (or reopen) a task: /done [pos].", aliases=["d"])
registry.register("toggle", cmd_toggle, help_text="Start/pause the timer: /toggle [pos].", aliases=["t"])
registry.register("skip", cmd_skip, help_text="Skip to the next pomodoro/break: /skip [pos].")
registry.register("timer", cmd_timer, help_text="Show the active timer.")
registry.register("start", cmd_start, help_text="Set the plan start: /start <HH:MM|now|off>.")
registry.register("stats", cmd_stats, help_text="Show daily productivity.")
registry.register("clear", cmd_clear, help_text="Clear tasks: /clear done | /clear all.")
registry.register("day", cmd_day, help_text="Switch day: /day [YYYY-MM-DD|today].")
