# tests/conftest.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from flowplan.connectors.console_connector import LatestReadout
from flowplan.core.state import AppState
from flowplan.plan.coordinator import PlanCoordinator
from flowplan.plan.models import TimerSettings
from flowplan.plan.plan_store import InMemoryPlanRepo

from .fakes import DAY, FakeClock, FakeNotifier, local_ts


@pytest.fixture()
def timer_settings() -> TimerSettings:
    return TimerSettings()


@pytest.fixture()
def clock() -> FakeClock:
    """Clock frozen at 08:00 on the test day; advance it explicitly."""
    return FakeClock(local_ts(8, 0))


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def repo() -> InMemoryPlanRepo:
    return InMemoryPlanRepo()


@pytest.fixture()
def coordinator(
    repo: InMemoryPlanRepo,
    timer_settings: TimerSettings,
    notifier: FakeNotifier,
    clock: FakeClock,
) -> PlanCoordinator:
    return PlanCoordinator(
        repo,
        timer_settings,
        notifier=notifier,
        clock=clock,
        day_key=DAY.isoformat(),
    )


@pytest.fixture()
def state(coordinator: PlanCoordinator) -> AppState:
    """
    AppState wired with the in-memory repository and fake clock.

    A SimpleNamespace stands in for Settings to keep tests away from the environment.
    """
    return AppState(
        settings=SimpleNamespace(persist=False),
        coordinator=coordinator,
        readout=LatestReadout(),
    )
