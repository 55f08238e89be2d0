# src/flowplan/plan/plan_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from .models import DEFAULT_COLOR, DayPlan, Task, TaskStatus, TimerData, TimerMode

logger = logging.getLogger(__name__)


class InMemoryPlanRepo:
    """Day-keyed plans kept in a dict. Stores copies so callers can't alias them."""

    def __init__(self) -> None:
        self._plans: dict[str, DayPlan] = {}

    def load_plan(self, day_key: str) -> DayPlan | None:
        plan = self._plans.get(day_key)
        return plan.copy() if plan is not None else None

    def save_plan(self, plan: DayPlan) -> None:
        self._plans[plan.day_key] = plan.copy()

    def list_day_keys(self) -> list[str]:
        return sorted(self._plans)

    def delete_plan(self, day_key: str) -> None:
        self._plans.pop(day_key, None)


class SqlitePlanStore:
    """
    SQLite plan store.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    A plan is saved as a whole (plan row + all task rows) in one transaction;
    task order is the position column.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "plans.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("SqlitePlanStore ready db=%s days=%s", self._db_path, len(self.list_day_keys()))

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS plans (
                    day_key TEXT PRIMARY KEY,
                    active_task_id TEXT,
                    plan_start_ts REAL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS plan_tasks (
                    day_key TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    duration INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'pending',
                    start_time REAL NOT NULL DEFAULT 0,
                    PRIMARY KEY (day_key, id)
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(plan_tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE plan_tasks ADD COLUMN {name} {decl}")
                logger.info("SqlitePlanStore migration: added column %s", name)

            add_col("color", f"TEXT NOT NULL DEFAULT '{DEFAULT_COLOR}'")
            add_col("anchored_start_time", "TEXT")
            add_col("notes", "TEXT")
            add_col("completed_pomodoros", "INTEGER NOT NULL DEFAULT 0")
            add_col("expected_pomodoros", "INTEGER NOT NULL DEFAULT 0")
            add_col("timer", "TEXT NOT NULL DEFAULT '{}'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_plan_tasks_order ON plan_tasks(day_key, position)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _timer_to_str(timer: TimerData) -> str:
        return json.dumps(
            {
                "remaining_seconds": timer.remaining_seconds,
                "is_running": timer.is_running,
                "last_started_at": timer.last_started_at,
                "mode": timer.mode.value,
            }
        )

    @staticmethod
    def _str_to_timer(s: str | None) -> TimerData:
        try:
            raw: Any = json.loads(s) if s else {}
        except json.JSONDecodeError:
            logger.warning("Unreadable timer JSON; resetting timer state.")
            raw = {}
        if not isinstance(raw, dict):
            raw = {}

        last = raw.get("last_started_at")
        running = bool(raw.get("is_running")) and last is not None
        return TimerData(
            remaining_seconds=float(raw.get("remaining_seconds") or 0.0),
            is_running=running,
            last_started_at=float(last) if running else None,
            mode=TimerMode.from_db(raw.get("mode")),
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            duration=max(0, int(row["duration"] or 0)),
            timer=self._str_to_timer(row["timer"]),
            start_time=float(row["start_time"] or 0.0),
            status=TaskStatus.from_db(row["status"]),
            color=str(row["color"] or DEFAULT_COLOR),
            anchored_start_time=row["anchored_start_time"],
            notes=row["notes"],
            completed_pomodoros=int(row["completed_pomodoros"] or 0),
            expected_pomodoros=int(row["expected_pomodoros"] or 0),
        )

    # ---- public API ----

    def load_plan(self, day_key: str) -> DayPlan | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM plans WHERE day_key = ?", (day_key,))
            plan_row = cur.fetchone()
            if plan_row is None:
                return None

            cur.execute(
                "SELECT * FROM plan_tasks WHERE day_key = ? ORDER BY position ASC",
                (day_key,),
            )
            tasks = [self._row_to_task(r) for r in cur.fetchall()]
            return DayPlan(
                day_key=day_key,
                tasks=tasks,
                active_task_id=plan_row["active_task_id"],
                plan_start_ts=(
                    float(plan_row["plan_start_ts"]) if plan_row["plan_start_ts"] is not None else None
                ),
            )
        finally:
            conn.close()

    def save_plan(self, plan: DayPlan) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO plans(day_key, active_task_id, plan_start_ts, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(day_key) DO UPDATE SET
                    active_task_id = excluded.active_task_id,
                    plan_start_ts = excluded.plan_start_ts,
                    updated_at = excluded.updated_at
                """,
                (plan.day_key, plan.active_task_id, plan.plan_start_ts, now),
            )
            cur.execute("DELETE FROM plan_tasks WHERE day_key = ?", (plan.day_key,))
            cur.executemany(
                """
                INSERT INTO plan_tasks(
                    day_key, position, id, title, duration, status, start_time,
                    color, anchored_start_time, notes,
                    completed_pomodoros, expected_pomodoros, timer
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        plan.day_key,
                        pos,
                        t.id,
                        t.title,
                        int(t.duration),
                        t.status.value,
                        float(t.start_time),
                        t.color,
                        t.anchored_start_time,
                        t.notes,
                        int(t.completed_pomodoros),
                        int(t.expected_pomodoros),
                        self._timer_to_str(t.timer),
                    )
                    for pos, t in enumerate(plan.tasks)
                ],
            )
            conn.commit()
            logger.debug("Plan saved day=%s tasks=%d", plan.day_key, len(plan.tasks))
        finally:
            conn.close()

    def list_day_keys(self) -> list[str]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT day_key FROM plans ORDER BY day_key ASC")
            return [str(r["day_key"]) for r in cur.fetchall()]
        finally:
            conn.close()

    def delete_plan(self, day_key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM plan_tasks WHERE day_key = ?", (day_key,))
            conn.execute("DELETE FROM plans WHERE day_key = ?", (day_key,))
            conn.commit()
        finally:
            conn.close()
