# src/flowplan/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..plan.coordinator import PlanCoordinator

if TYPE_CHECKING:
    from ..connectors.console_connector import LatestReadout


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    coordinator: PlanCoordinator
    readout: LatestReadout | None = None
