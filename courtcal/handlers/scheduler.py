from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from courtcal.services.cache_store import MonthlyCacheStore
from courtcal.services.orchestrator import BackfillOrchestrator
from courtcal.utils.dates import today_in

logger = logging.getLogger(__name__)

JOB_ID = "daily_update"

FRESH_REASON = "Cache is fresh (less than 24 hours old)"


class DailyUpdateScheduler:
    """Refreshes today's availability once a day at a fixed local time."""

    def __init__(
        self,
        orchestrator: BackfillOrchestrator,
        store: MonthlyCacheStore,
        timezone: str = "America/Los_Angeles",
        hour: int = 17,
        minute: int = 0,
    ) -> None:
        self.orchestrator = orchestrator
        self.store = store
        self.timezone = timezone
        self.hour = hour
        self.minute = minute
        self.last_update_status: dict[str, Any] | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._description: str | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> bool:
        if self.is_running:
            logger.warning("Scheduler is already running")
            return False
        trigger = CronTrigger(
            hour=self.hour, minute=self.minute, timezone=pytz.timezone(self.timezone)
        )
        description = f"daily at {self.hour:02d}:{self.minute:02d} {self.timezone}"
        return self._start(trigger, description)

    def start_test_schedule(self, cron_expression: str = "*/2 * * * *") -> bool:
        if self.is_running:
            logger.warning("Scheduler is already running, stopping current schedule")
            self.stop()
        try:
            trigger = CronTrigger.from_crontab(cron_expression, timezone=pytz.timezone(self.timezone))
        except ValueError as exc:
            logger.error("Invalid cron expression %r: %s", cron_expression, exc)
            return False
        return self._start(trigger, f"test schedule '{cron_expression}'")

    def stop(self) -> bool:
        if not self.is_running:
            logger.warning("Scheduler is not running")
            return False
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._description = None
        logger.info("Scheduled updates stopped")
        return True

    def validate_cron_expression(self, expression: str) -> bool:
        try:
            CronTrigger.from_crontab(expression, timezone=pytz.timezone(self.timezone))
        except ValueError:
            return False
        return True

    async def perform_update(self, day: str | None = None) -> dict[str, Any]:
        """Refresh ``day`` (today by default) unless its cache is still fresh."""
        day = day or today_in(self.timezone).isoformat()
        started = time.monotonic()
        logger.info("Starting scheduled update for %s", day)

        if self.store.is_valid_for_date(day):
            logger.info("Cache is still fresh for %s, skipping update", day)
            return {
                "success": True,
                "date": day,
                "skipped": True,
                "reason": FRESH_REASON,
                "duration": int((time.monotonic() - started) * 1000),
            }

        result = await self.orchestrator.run_for_date(day)
        status = result.to_dict()
        status["duration"] = int((time.monotonic() - started) * 1000)
        return status

    def status(self) -> dict[str, Any]:
        now = datetime.now(tz=pytz.timezone(self.timezone))
        next_run = None
        if self.is_running:
            job = self._scheduler.get_job(JOB_ID)
            if job is not None and job.next_run_time is not None:
                next_run = job.next_run_time.isoformat()
        return {
            "isRunning": self.is_running,
            "schedule": self._description,
            "nextRunTime": next_run,
            "lastUpdateStatus": self.last_update_status,
            "currentTime": now.strftime("%Y-%m-%d %H:%M:%S %Z"),
            "currentDate": now.date().isoformat(),
        }

    def _start(self, trigger: CronTrigger, description: str) -> bool:
        scheduler = AsyncIOScheduler(timezone=pytz.timezone(self.timezone))
        scheduler.add_job(
            self._run_scheduled_update,
            trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        scheduler.start()
        self._scheduler = scheduler
        self._description = description
        logger.info("Scheduled updates started (%s)", description)
        return True

    async def _run_scheduled_update(self) -> None:
        logger.info("Triggered scheduled update")
        try:
            result = await self.perform_update()
        except Exception as exc:
            logger.exception("Scheduled update failed")
            result = {"success": False, "error": str(exc)}
        self.last_update_status = result
        if result.get("success"):
            logger.info(
                "Scheduled update completed for %s (skipped=%s)",
                result.get("date"), result.get("skipped", False),
            )
        else:
            logger.error("Scheduled update failed for %s: %s", result.get("date"), result.get("error"))
