# src/flowplan/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the periodic plan services (clock refresh, timer ticker, display sampler)
  in a background thread (optional),
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..plan.services import DisplaySampler, PlanServicesRunner, start_plan_services_in_background

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    runner: PlanServicesRunner | None = None
    if settings.services_enabled:
        sampler = None
        if state.readout is not None:
            sampler = DisplaySampler(state.readout, interval_seconds=settings.display_interval_seconds)
        runner = start_plan_services_in_background(
            state.coordinator,
            sampler=sampler,
            clock_refresh_seconds=settings.clock_refresh_seconds,
            tick_seconds=settings.tick_seconds,
        )

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    # The console handles Ctrl+C itself (KeyboardInterrupt out of input()).
    if not settings.console_enabled:
        try:
            signal.signal(signal.SIGINT, _handle_signal)
            signal.signal(signal.SIGTERM, _handle_signal)
        except (ValueError, OSError):
            logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running plan services only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
