"""Background task scheduler for periodic jobs (daily sales recalculation)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from castsales.db.session import SessionLocal
from castsales.services.sales.recalculation import run_scheduled_recalculation

logger = logging.getLogger(__name__)

RECALCULATION_TASK = "recalculate_sales"


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks at fixed intervals. State is in memory only and
    does not survive restarts.
    """

    def __init__(self, poll_seconds: int = 60):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self._task_handle: Optional[asyncio.Task] = None
        self.poll_seconds = poll_seconds

    async def run_pending(self, now: Optional[datetime] = None):
        """Run every task whose next run time has passed."""
        now = now or datetime.now(timezone.utc)
        for name, task in list(self._tasks.items()):
            if now < task["next_run"]:
                continue
            try:
                if asyncio.iscoroutinefunction(task["func"]):
                    await task["func"]()
                else:
                    # Blocking sync jobs run off the event loop.
                    await asyncio.to_thread(task["func"])
                task["last_run"] = now
                task["run_count"] = task.get("run_count", 0) + 1
                task["last_error"] = None
                logger.debug(f"Scheduled task '{name}' completed")
            except Exception as e:
                task["last_error"] = str(e)
                logger.error(f"Scheduled task '{name}' failed: {e}")
            task["next_run"] = now + task["interval"]

    async def start(self):
        """Start the scheduler loop."""
        self._running = True
        logger.info("Task scheduler started")

        while self._running:
            await self.run_pending()
            await asyncio.sleep(self.poll_seconds)

    def stop(self):
        self._running = False
        if self._task_handle:
            self._task_handle.cancel()

    def add_task(self, name: str, func: Callable, interval_seconds: int, first_run_in: int = 10):
        self._tasks[name] = {
            "func": func,
            "interval": timedelta(seconds=interval_seconds),
            "next_run": datetime.now(timezone.utc) + timedelta(seconds=first_run_in),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' every {interval_seconds}s")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                "next_run": t["next_run"].isoformat(),
                "interval_seconds": int(t["interval"].total_seconds()),
                "run_count": t.get("run_count", 0),
                "last_error": t.get("last_error"),
            }
            for name, t in self._tasks.items()
        }


def scheduled_recalculation_job():
    """Job body: one session per run, closed afterwards."""
    db = SessionLocal()
    try:
        results = run_scheduled_recalculation(db)
        failed = [r for r in results if not r["success"]]
        if failed:
            logger.warning(f"{len(failed)} scheduled recalculations failed")
        return results
    finally:
        db.close()


scheduler = TaskScheduler()
