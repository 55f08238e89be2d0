# src/flowplan/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the plan repository, notifier and display readout into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleNotifier, LatestReadout
from ..core.ports import PlanRepo
from ..core.state import AppState
from ..plan.coordinator import PlanCoordinator
from ..plan.plan_store import InMemoryPlanRepo, SqlitePlanStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.plans_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    repo: PlanRepo
    if settings.persist:
        _ensure_local_dirs(settings)
        repo = SqlitePlanStore(settings.plans_db_path)
    else:
        repo = InMemoryPlanRepo()
        logger.info("Persistence disabled; plans live in memory only.")

    coordinator = PlanCoordinator(
        repo,
        settings.timer_settings(),
        notifier=ConsoleNotifier(),
        default_duration=settings.default_task_minutes,
    )
    return AppState(settings=settings, coordinator=coordinator, readout=LatestReadout())
