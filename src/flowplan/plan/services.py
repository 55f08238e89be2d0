# src/flowplan/plan/services.py

from __future__ import annotations

"""
Periodic collaborators of the planner.

- clock refresh (~60s): recalculates so an unattended overrunning task keeps
  pushing the rest of the plan,
- timer ticker (~1 Hz): the only loop allowed to finish an expired timer,
- display sampler (high frequency, cancellable): pushes visual remainders to a
  sink; restarted whenever the active task or its timer state changes.

The console REPL is blocking (input()), so these run on their own event loop in a
background thread. To stop a loop, cancel the coroutine/task.
"""

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..core.ports import DisplaySink
from .coordinator import PlanCoordinator
from .models import DayPlan, TimerData
from .timer import display_remaining

logger = logging.getLogger(__name__)


async def run_clock_refresh(
    coordinator: PlanCoordinator,
    *,
    interval_seconds: float = 60.0,
) -> None:
    sleep_s = max(1.0, float(interval_seconds))
    while True:
        await asyncio.sleep(sleep_s)
        try:
            coordinator.refresh()
        except Exception:
            logger.exception("clock refresh failed")


async def run_timer_ticker(
    coordinator: PlanCoordinator,
    *,
    interval_seconds: float = 1.0,
) -> None:
    sleep_s = max(0.05, float(interval_seconds))
    while True:
        try:
            coordinator.tick()
        except Exception:
            logger.exception("timer tick failed")
        await asyncio.sleep(sleep_s)


class DisplaySampler:
    """
    Non-authoritative countdown display.

    Samples display_remaining() for the active task and hands it to a sink. It
    never finishes a timer; state transitions belong to the ticker only.
    restart() cancels the stale sampling task before starting a new one.
    """

    def __init__(
        self,
        sink: DisplaySink,
        *,
        interval_seconds: float = 0.1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink
        self._interval = max(0.01, float(interval_seconds))
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._key: tuple[str | None, bool, float | None, float] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _sample(self, task_id: str, timer: TimerData) -> None:
        while True:
            self._sink.show(task_id, display_remaining(timer, self._clock()))
            await asyncio.sleep(self._interval)

    def restart(self, task_id: str | None, timer: TimerData | None) -> None:
        """Must be called from the event loop thread."""
        self.stop()
        if task_id is None or timer is None:
            self._sink.show(None, 0.0)
            return
        if not timer.is_running:
            self._sink.show(task_id, display_remaining(timer, self._clock()))
            return
        self._task = asyncio.get_running_loop().create_task(self._sample(task_id, timer))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def on_plan_changed(self, plan: DayPlan) -> None:
        """Restart only when the active task or its timer state actually changed."""
        task = plan.find(plan.active_task_id)
        timer = task.timer if task is not None else None
        key = (
            plan.active_task_id,
            bool(timer and timer.is_running),
            timer.last_started_at if timer else None,
            timer.remaining_seconds if timer else 0.0,
        )
        if key == self._key:
            return
        self._key = key
        self.restart(plan.active_task_id, timer)


async def run_plan_services(
    coordinator: PlanCoordinator,
    stop_event: asyncio.Event,
    *,
    sampler: DisplaySampler | None = None,
    clock_refresh_seconds: float = 60.0,
    tick_seconds: float = 1.0,
) -> None:
    loop = asyncio.get_running_loop()

    def _listener(plan: DayPlan) -> None:
        # Coordinator listeners fire on whichever thread mutated the plan.
        if sampler is not None:
            loop.call_soon_threadsafe(sampler.on_plan_changed, plan)

    coordinator.add_listener(_listener)
    if sampler is not None:
        sampler.on_plan_changed(coordinator.snapshot())

    tasks = [
        asyncio.create_task(run_clock_refresh(coordinator, interval_seconds=clock_refresh_seconds)),
        asyncio.create_task(run_timer_ticker(coordinator, interval_seconds=tick_seconds)),
    ]
    logger.info("Plan services started (refresh=%ss tick=%ss).", clock_refresh_seconds, tick_seconds)

    try:
        await stop_event.wait()
    finally:
        coordinator.remove_listener(_listener)
        if sampler is not None:
            sampler.stop()
        for t in tasks:
            t.cancel()
        for t in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await t
        logger.info("Plan services stopped.")


@dataclass
class PlanServicesRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal plan services stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_plan_services_in_background(
    coordinator: PlanCoordinator,
    *,
    sampler: DisplaySampler | None = None,
    clock_refresh_seconds: float = 60.0,
    tick_seconds: float = 1.0,
) -> PlanServicesRunner | None:
    """Run the periodic services on their own event loop in a daemon thread."""
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_plan_services(
                    coordinator,
                    stop_event,
                    sampler=sampler,
                    clock_refresh_seconds=clock_refresh_seconds,
                    tick_seconds=tick_seconds,
                )
            )
        except Exception:
            logger.exception("Plan services crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="flowplan-services", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Plan services thread did not initialize properly.")
        return None

    logger.info("Plan services background thread started.")
    return PlanServicesRunner(thread=t, loop=loop, stop_event=stop_event)
