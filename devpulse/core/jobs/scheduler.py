"""Daily incremental sync scheduling."""

import asyncio
from datetime import datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from ..logging import get_logger
from ..models.tortoise_models import Job, UserSettings
from .manager import JobManager, JobPriority, JobType, get_job_manager

logger = get_logger("jobs.scheduler")

DAILY_SYNC_TIME = time(hour=2, tzinfo=timezone.utc)


def next_run_after(moment: datetime, at: time = DAILY_SYNC_TIME) -> datetime:
    """The first daily run time strictly after ``moment``."""
    candidate = datetime.combine(moment.date(), at)
    if candidate <= moment:
        candidate += timedelta(days=1)
    return candidate


class SyncScheduler:
    """Enqueues one incremental sync per user with selected repositories each day."""

    def __init__(
        self,
        manager: Optional[JobManager] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.manager = manager or get_job_manager()
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def run_daily_sync(self) -> List[str]:
        """Queue today's syncs; returns the ids of users that got a job."""
        now = self.clock()
        midnight = datetime.combine(now.date(), time(tzinfo=timezone.utc))
        scheduled = []
        for settings in await UserSettings.all():
            if not settings.selected_repositories:
                continue
            already = await Job.exists(
                type=JobType.INCREMENTAL_SYNC.value,
                user_id=settings.user_id,
                created_at__gte=midnight,
            )
            if already:
                continue
            await self.manager.add_job(
                JobType.INCREMENTAL_SYNC,
                {"userId": str(settings.user_id), "scheduledAt": now.isoformat()},
                priority=JobPriority.LOW,
                user_id=settings.user_id,
            )
            scheduled.append(str(settings.user_id))
        logger.info("Daily sync scheduled", users=len(scheduled))
        return scheduled

    async def _loop(self) -> None:
        while True:
            wait = (next_run_after(self.clock()) - self.clock()).total_seconds()
            try:
                await asyncio.sleep(max(0.0, wait))
                await self.run_daily_sync()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Daily sync scheduling failed", error=str(e))
                await asyncio.sleep(60)

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Sync scheduler started", run_at=DAILY_SYNC_TIME.isoformat())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
