# tests/test_coordinator.py

from __future__ import annotations

import pytest

from flowplan.plan.coordinator import PlanCoordinator, complete_task
from flowplan.plan.models import DayPlan, TaskNotFoundError, TaskStatus, TimerMode, TimerSettings
from flowplan.plan.plan_store import InMemoryPlanRepo
from flowplan.plan.schedule import recalculate

from .fakes import DAY, FakeClock, FakeNotifier, local_ts, make_task


def _starts(coordinator: PlanCoordinator) -> list[float]:
    return [t.start_time for t in coordinator.snapshot().tasks]


def test_first_add_pins_plan_start_to_now(coordinator: PlanCoordinator, clock: FakeClock) -> None:
    coordinator.add_task("Write report", 30)
    clock.advance(600)
    coordinator.add_task("Emails", 15)

    plan = coordinator.snapshot()
    assert plan.plan_start_ts == local_ts(8, 0)
    assert _starts(coordinator) == [local_ts(8, 0), local_ts(8, 30)]


def test_add_uses_defaults_and_expected_pomodoros(coordinator: PlanCoordinator) -> None:
    task = coordinator.add_task("  Deep work  ")
    assert task.title == "Deep work"
    assert task.duration == 25
    assert task.expected_pomodoros == 1
    assert task.status == TaskStatus.PENDING
    assert task.timer.mode == TimerMode.POMO
    assert task.timer.remaining_seconds == 25 * 60

    longer = coordinator.add_task("Project", 60)
    assert longer.expected_pomodoros == 3


def test_add_rejects_bad_input(coordinator: PlanCoordinator) -> None:
    with pytest.raises(ValueError):
        coordinator.add_task("   ", 10)
    with pytest.raises(ValueError):
        coordinator.add_task("x", -1)
    with pytest.raises(ValueError):
        coordinator.add_task("x", 10, anchor="noon")


def test_add_at_index_inserts_before(coordinator: PlanCoordinator) -> None:
    coordinator.add_task("A", 30)
    coordinator.add_task("C", 30)
    coordinator.add_task("B", 10, index=1)

    plan = coordinator.snapshot()
    assert [t.title for t in plan.tasks] == ["A", "B", "C"]
    assert _starts(coordinator) == [local_ts(8, 0), local_ts(8, 30), local_ts(8, 40)]


def test_anchor_added_through_coordinator_compresses(coordinator: PlanCoordinator) -> None:
    coordinator.add_task("A", 45)
    coordinator.add_task("B", 30, anchor="8:30")

    a, b = coordinator.snapshot().tasks
    assert b.anchored_start_time == "08:30"
    assert a.duration == 30
    assert b.start_time == local_ts(8, 30)


def test_remove_recalculates_and_resets_start_when_empty(
    coordinator: PlanCoordinator, clock: FakeClock
) -> None:
    a = coordinator.add_task("A", 30)
    b = coordinator.add_task("B", 30)
    coordinator.select(a.id)

    coordinator.remove_task(a.id)
    plan = coordinator.snapshot()
    assert plan.active_task_id is None
    assert plan.tasks[0].start_time == local_ts(8, 0)

    coordinator.remove_task(b.id)
    assert coordinator.snapshot().plan_start_ts is None

    clock.advance(3600)
    coordinator.add_task("Later", 10)
    assert coordinator.snapshot().plan_start_ts == local_ts(9, 0)


def test_remove_unknown_task_raises(coordinator: PlanCoordinator) -> None:
    with pytest.raises(TaskNotFoundError):
        coordinator.remove_task("missing")


def test_reorder_moves_and_recalculates(coordinator: PlanCoordinator) -> None:
    coordinator.add_task("A", 30)
    coordinator.add_task("B", 10)
    coordinator.add_task("C", 20)

    coordinator.reorder(2, 0)

    plan = coordinator.snapshot()
    assert [t.title for t in plan.tasks] == ["C", "A", "B"]
    assert _starts(coordinator) == [local_ts(8, 0), local_ts(8, 20), local_ts(8, 50)]

    with pytest.raises(TaskNotFoundError):
        coordinator.reorder(0, 3)


def test_update_duration_recomputes_pomodoros(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 25)
    coordinator.add_task("B", 25)

    updated = coordinator.update_task(a.id, duration=70)

    assert updated.expected_pomodoros == 3
    assert coordinator.snapshot().tasks[1].start_time == local_ts(9, 10)


def test_update_validates_fields(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 25)

    with pytest.raises(ValueError):
        coordinator.update_task(a.id, start_time=0)
    with pytest.raises(ValueError):
        coordinator.update_task(a.id, status="completed")
    with pytest.raises(ValueError):
        coordinator.update_task(a.id, anchored_start_time="7pm")
    with pytest.raises(TaskNotFoundError):
        coordinator.update_task("missing", title="x")

    cleared = coordinator.update_task(a.id, anchored_start_time="09:00")
    assert cleared.anchored_start_time == "09:00"
    cleared = coordinator.update_task(a.id, anchored_start_time=None)
    assert cleared.anchored_start_time is None


def test_select_keeps_a_single_active_task(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 30)
    b = coordinator.add_task("B", 30)

    coordinator.select(a.id)
    coordinator.select(b.id)

    plan = coordinator.snapshot()
    assert plan.active_task_id == b.id
    assert [t.status for t in plan.tasks] == [TaskStatus.PENDING, TaskStatus.ACTIVE]


def test_select_completed_task_is_rejected(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 30)
    coordinator.complete(a.id)
    with pytest.raises(ValueError):
        coordinator.select(a.id)


def test_complete_snaps_duration_to_elapsed_minutes(
    coordinator: PlanCoordinator, clock: FakeClock
) -> None:
    a = coordinator.add_task("A", 30)
    coordinator.add_task("B", 30)
    coordinator.select(a.id)

    clock.advance(10 * 60 + 30)
    done = coordinator.complete(a.id)

    plan = coordinator.snapshot()
    assert done.status == TaskStatus.COMPLETED
    assert done.duration == 11
    assert plan.active_task_id is None
    assert plan.tasks[1].start_time == local_ts(8, 11)


def test_complete_right_at_start_counts_one_minute(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 30)
    assert coordinator.complete(a.id).duration == 1


def test_complete_future_task_costs_nothing(coordinator: PlanCoordinator, clock: FakeClock) -> None:
    coordinator.add_task("A", 30)
    b = coordinator.add_task("B", 30)
    clock.advance(10 * 60)

    done = coordinator.complete(b.id)

    assert done.duration == 0
    assert done.status == TaskStatus.COMPLETED


def test_reopen_only_reverts_status(coordinator: PlanCoordinator, clock: FakeClock) -> None:
    a = coordinator.add_task("A", 30)
    clock.advance(5 * 60)
    coordinator.complete(a.id)

    reopened = coordinator.complete(a.id)

    assert reopened.status == TaskStatus.PENDING
    assert reopened.duration == 5


def test_complete_task_function_returns_next_active() -> None:
    start = local_ts(8, 0)
    tasks = recalculate(
        [make_task("a", 30, status=TaskStatus.ACTIVE), make_task("b", 30)], "a", start, start, DAY
    )

    result = complete_task(tasks, "a", local_ts(8, 20), "a", plan_start_ts=start, reference_date=DAY)
    assert result.next_active_id is None
    assert result.tasks[0].duration == 20
    assert result.tasks[1].start_time == local_ts(8, 20)

    other = complete_task(tasks, "b", local_ts(8, 20), "a", plan_start_ts=start, reference_date=DAY)
    assert other.next_active_id == "a"
    assert other.tasks[1].duration == 0


def test_completing_pauses_a_running_timer(coordinator: PlanCoordinator, clock: FakeClock) -> None:
    a = coordinator.add_task("A", 30)
    coordinator.select(a.id)
    coordinator.toggle_timer()
    clock.advance(120)

    done = coordinator.complete(a.id)

    assert done.timer.is_running is False
    assert done.timer.last_started_at is None
    assert done.timer.remaining_seconds == 25 * 60 - 120


def test_refresh_reflects_active_overrun(coordinator: PlanCoordinator, clock: FakeClock) -> None:
    a = coordinator.add_task("A", 30)
    coordinator.add_task("B", 30)
    coordinator.select(a.id)

    clock.advance(45 * 60)
    coordinator.refresh()
    assert coordinator.snapshot().tasks[1].start_time == clock.now

    clock.advance(60)
    coordinator.refresh()
    assert coordinator.snapshot().tasks[1].start_time == clock.now
    assert coordinator.snapshot().tasks[0].duration == 30


def test_repeated_refresh_before_an_anchor_is_stable(
    coordinator: PlanCoordinator, clock: FakeClock
) -> None:
    a = coordinator.add_task("A", 60)
    coordinator.add_task("B", 30, anchor="09:00")
    coordinator.select(a.id)

    clock.advance(70 * 60)
    durations = []
    for _ in range(4):
        coordinator.refresh()
        durations.append(coordinator.snapshot().tasks[0].duration)

    assert durations == [60, 60, 60, 60]
    assert coordinator.snapshot().tasks[1].start_time == local_ts(9, 10)

    # Other mutations run the same pass and must not shrink it either.
    coordinator.add_task("C", 10)
    coordinator.select(a.id)
    assert coordinator.snapshot().tasks[0].duration == 60


def test_add_rejects_out_of_range_positions(coordinator: PlanCoordinator) -> None:
    coordinator.add_task("A", 30)

    with pytest.raises(TaskNotFoundError):
        coordinator.add_task("B", 10, index=-1)
    with pytest.raises(TaskNotFoundError):
        coordinator.add_task("B", 10, index=2)

    coordinator.add_task("B", 10, index=1)
    assert [t.title for t in coordinator.snapshot().tasks] == ["A", "B"]


def test_tick_finishes_expired_timer_and_notifies(
    coordinator: PlanCoordinator, clock: FakeClock, notifier: FakeNotifier
) -> None:
    a = coordinator.add_task("A", 50)
    coordinator.select(a.id)
    coordinator.toggle_timer()

    clock.advance(25 * 60 - 1)
    assert coordinator.tick() is None
    assert notifier.calls == []

    clock.advance(1)
    transition = coordinator.tick()

    assert transition is not None
    assert transition.next_mode == TimerMode.SHORT_BREAK
    task = coordinator.active_task()
    assert task is not None
    assert task.completed_pomodoros == 1
    assert task.timer.is_running is False
    assert len(notifier.calls) == 1
    assert notifier.calls[0][0].id == a.id

    # Not auto-started: nothing left to finish.
    clock.advance(3600)
    assert coordinator.tick() is None


def test_skip_and_toggle_need_a_target(coordinator: PlanCoordinator, notifier: FakeNotifier) -> None:
    with pytest.raises(TaskNotFoundError):
        coordinator.toggle_timer()

    a = coordinator.add_task("A", 50)
    transition = coordinator.skip_timer(a.id)

    assert transition.finished_mode == TimerMode.POMO
    assert len(notifier.calls) == 1


def test_listeners_receive_snapshots(coordinator: PlanCoordinator) -> None:
    seen: list[DayPlan] = []
    coordinator.add_listener(seen.append)

    a = coordinator.add_task("A", 30)
    seen[-1].tasks[0].title = "mutated by listener"

    assert len(seen) == 1
    assert coordinator.snapshot().tasks[0].title == "A"

    coordinator.remove_listener(seen.append)
    coordinator.remove_task(a.id)
    assert len(seen) == 1


def test_failing_listener_does_not_break_mutations(coordinator: PlanCoordinator) -> None:
    def boom(plan: DayPlan) -> None:
        raise RuntimeError("listener bug")

    coordinator.add_listener(boom)
    coordinator.add_task("A", 30)
    assert len(coordinator.snapshot().tasks) == 1


def test_every_mutation_is_saved(coordinator: PlanCoordinator, repo: InMemoryPlanRepo) -> None:
    a = coordinator.add_task("A", 30)
    coordinator.select(a.id)

    stored = repo.load_plan(DAY.isoformat())
    assert stored == coordinator.snapshot()


def test_clear_completed_and_clear_all(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 30)
    coordinator.add_task("B", 30)
    coordinator.complete(a.id)

    assert coordinator.clear_completed() == 1
    plan = coordinator.snapshot()
    assert [t.title for t in plan.tasks] == ["B"]
    assert plan.plan_start_ts is not None

    coordinator.clear_all()
    plan = coordinator.snapshot()
    assert plan.tasks == []
    assert plan.active_task_id is None
    assert plan.plan_start_ts is None


def test_set_plan_start_moves_the_whole_plan(coordinator: PlanCoordinator) -> None:
    coordinator.add_task("A", 30)
    coordinator.add_task("B", 30)

    coordinator.set_plan_start(local_ts(13, 0))

    assert _starts(coordinator) == [local_ts(13, 0), local_ts(13, 30)]


def test_switch_day_keeps_plans_apart(coordinator: PlanCoordinator, repo: InMemoryPlanRepo) -> None:
    coordinator.add_task("Today", 30)

    coordinator.switch_day("2026-10-18")
    assert coordinator.snapshot().tasks == []
    coordinator.add_task("Tomorrow", 30)

    coordinator.switch_day(DAY.isoformat())
    assert [t.title for t in coordinator.snapshot().tasks] == ["Today"]
    assert repo.list_day_keys() == ["2026-10-17", "2026-10-18"]

    with pytest.raises(ValueError):
        coordinator.switch_day("tomorrow")


def test_stats_summarize_pomodoros(coordinator: PlanCoordinator) -> None:
    a = coordinator.add_task("A", 50)
    coordinator.add_task("B", 50)
    coordinator.skip_timer(a.id)

    st = coordinator.stats()
    assert st.pomodoros_expected == 4
    assert st.pomodoros_completed == 1
    assert st.productivity_percent == 25
    assert st.focused_minutes == 25
    assert st.planned_minutes == 100
    assert st.tasks_total == 2


def test_stats_with_nothing_expected(coordinator: PlanCoordinator) -> None:
    assert coordinator.stats().productivity_percent == 0


def test_coordinator_loads_existing_plan() -> None:
    repo = InMemoryPlanRepo()
    clock = FakeClock(local_ts(9, 0))
    repo.save_plan(
        DayPlan(day_key=DAY.isoformat(), tasks=[make_task("a", 30)], plan_start_ts=local_ts(8, 0))
    )

    coordinator = PlanCoordinator(repo, TimerSettings(), clock=clock, day_key=DAY.isoformat())

    assert coordinator.snapshot().tasks[0].id == "a"
