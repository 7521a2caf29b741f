"""
In-process background job manager.

Jobs are persisted as ``Job`` rows, which double as the queue: workers
started with ``JobManager.start()`` claim the highest-priority due job,
run the processor registered for its type and record the outcome. Failed
jobs are retried with exponential backoff until their attempts run out.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID

from tortoise.expressions import Q

from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import Job

logger = get_logger("jobs.manager")

UserId = Union[UUID, str]


class JobType(str, Enum):
    """Kinds of background work."""

    REPOSITORY_SYNC = "repository-sync"
    INITIAL_SYNC = "initial-sync"
    INCREMENTAL_SYNC = "incremental-sync"
    METRICS_CALCULATION = "metrics-calculation"
    BURNOUT_ANALYSIS = "burnout-analysis"
    TEAM_METRICS = "team-metrics"
    DATA_EXPORT = "data-export"
    DATA_DELETION = "data-deletion"


class JobPriority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class JobStatus(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


PENDING_STATUSES = (JobStatus.WAITING.value, JobStatus.DELAYED.value)

BACKOFF_BASE_SECONDS = 5.0
DEFAULT_ATTEMPTS = 3
DEFAULT_WORKERS = 2
POLL_INTERVAL_SECONDS = 5.0

JobProcessor = Callable[[Job, "JobManager"], Awaitable[Any]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before retry number ``attempt`` (1-based)."""
    return BACKOFF_BASE_SECONDS * (2 ** max(0, attempt - 1))


def serialize_job(job: Job) -> Dict[str, Any]:
    return {
        "id": str(job.id),
        "type": job.type,
        "status": job.status,
        "priority": job.priority,
        "data": job.payload,
        "progress": job.progress,
        "result": job.result,
        "error": job.error,
        "attempts": job.attempts,
        "maxAttempts": job.max_attempts,
        "userId": str(job.user_id) if job.user_id else None,
        "runAt": job.run_at.isoformat() if job.run_at else None,
        "createdAt": job.created_at.isoformat() if job.created_at else None,
        "startedAt": job.started_at.isoformat() if job.started_at else None,
        "finishedAt": job.finished_at.isoformat() if job.finished_at else None,
    }


class JobManager:
    """Queue, worker pool and processor registry for background jobs."""

    def __init__(
        self, workers: int = DEFAULT_WORKERS, poll_interval: float = POLL_INTERVAL_SECONDS
    ) -> None:
        self.workers = workers
        self.poll_interval = poll_interval
        self.processors: Dict[str, JobProcessor] = {}
        self.running = False
        self._tasks: List[asyncio.Task] = []
        self._wakeup = asyncio.Event()

    def register(self, job_type: Union[JobType, str], processor: JobProcessor) -> None:
        """Attach the coroutine that runs jobs of ``job_type``."""
        key = JobType(job_type).value
        self.processors[key] = processor
        logger.debug("Job processor registered", job_type=key)

    async def add_job(
        self,
        job_type: Union[JobType, str],
        data: Optional[Dict[str, Any]] = None,
        priority: int = JobPriority.MEDIUM,
        delay: float = 0,
        attempts: int = DEFAULT_ATTEMPTS,
        user_id: Optional[UserId] = None,
    ) -> Job:
        """
        Persist a job for the workers to pick up.

        Args:
            job_type: A ``JobType`` or its value
            data: Processor input
            priority: 1 (low) to 4 (critical)
            delay: Seconds before the job becomes due
            attempts: Maximum number of runs before the job is failed

        Raises:
            AppError: BAD_REQUEST for an unknown type or priority
        """
        try:
            job_type = JobType(job_type)
            priority = JobPriority(int(priority))
        except ValueError as e:
            raise create_app_error(ErrorCode.BAD_REQUEST, str(e)) from e

        run_at = _now() + timedelta(seconds=delay) if delay > 0 else None
        job = await Job.create(
            type=job_type.value,
            status=JobStatus.DELAYED.value if run_at else JobStatus.WAITING.value,
            priority=int(priority),
            payload=data or {},
            max_attempts=max(1, attempts),
            user_id=user_id,
            run_at=run_at,
        )
        logger.info(
            "Job added",
            job_id=str(job.id),
            job_type=job_type.value,
            priority=int(priority),
            delay=delay,
        )
        self._wakeup.set()
        return job

    async def get_job(self, job_id: UserId) -> Optional[Job]:
        return await Job.get_or_none(id=job_id)

    async def list_jobs(
        self,
        status: Optional[Union[JobStatus, str]] = None,
        user_id: Optional[UserId] = None,
        job_type: Optional[Union[JobType, str]] = None,
        limit: int = 50,
    ) -> List[Job]:
        query = Job.all()
        if status is not None:
            query = query.filter(status=JobStatus(status).value)
        if user_id is not None:
            query = query.filter(user_id=user_id)
        if job_type is not None:
            query = query.filter(type=JobType(job_type).value)
        return await query.order_by("-created_at").limit(limit)

    async def cancel_job(self, job_id: UserId) -> bool:
        """Cancel a job that has not started yet."""
        updated = await Job.filter(id=job_id, status__in=PENDING_STATUSES).update(
            status=JobStatus.CANCELLED.value, finished_at=_now()
        )
        if updated:
            logger.info("Job cancelled", job_id=str(job_id))
        return bool(updated)

    async def update_progress(
        self, job: Job, progress: int, message: Optional[str] = None
    ) -> None:
        job.progress = max(0, min(100, int(progress)))
        await Job.filter(id=job.id).update(progress=job.progress)
        logger.debug(
            "Job progress", job_id=str(job.id), progress=job.progress, message=message
        )

    async def get_stats(self) -> Dict[str, Any]:
        counts = {status.value: 0 for status in JobStatus}
        for status in counts:
            counts[status] = await Job.filter(status=status).count()
        return {
            "running": self.running,
            "workers": len(self._tasks),
            "processors": sorted(self.processors),
            "counts": counts,
        }

    async def start(self) -> None:
        """Requeue interrupted jobs and start the worker tasks."""
        if self.running:
            return
        self.running = True
        # Active rows left over from a previous process
        orphaned = await Job.filter(status=JobStatus.ACTIVE.value).update(
            status=JobStatus.WAITING.value
        )
        if orphaned:
            logger.warning("Requeued interrupted jobs", count=orphaned)
        self._tasks = [
            asyncio.create_task(self._worker_loop(i)) for i in range(self.workers)
        ]
        logger.info("Job manager started", workers=self.workers)

    async def stop(self) -> None:
        """Stop the workers."""
        self.running = False
        self._wakeup.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Job manager stopped")

    async def _worker_loop(self, index: int) -> None:
        while self.running:
            try:
                ran = await self.run_next()
            except Exception as e:
                logger.error("Job worker error", worker=index, error=str(e))
                ran = False
            if ran:
                continue
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _claim(self) -> Optional[Job]:
        now = _now()
        candidates = (
            await Job.filter(status__in=PENDING_STATUSES)
            .filter(type__in=list(self.processors))
            .filter(Q(run_at__isnull=True) | Q(run_at__lte=now))
            .order_by("-priority", "created_at")
            .limit(10)
        )
        for job in candidates:
            # Another worker may have claimed it since the query
            claimed = await Job.filter(id=job.id, status=job.status).update(
                status=JobStatus.ACTIVE.value,
                started_at=now,
                attempts=job.attempts + 1,
            )
            if claimed:
                job.status = JobStatus.ACTIVE.value
                job.started_at = now
                job.attempts += 1
                return job
        return None

    async def run_next(self) -> bool:
        """Claim and run one due job; returns False when none was due."""
        job = await self._claim()
        if job is None:
            return False
        await self.run_job(job)
        return True

    async def run_job(self, job: Job) -> None:
        processor = self.processors[job.type]
        logger.info(
            "Job started", job_id=str(job.id), job_type=job.type, attempt=job.attempts
        )
        try:
            result = await processor(job, self)
        except Exception as e:
            await self._handle_failure(job, e)
            return

        job.status = JobStatus.COMPLETED.value
        job.result = result
        job.progress = 100
        job.error = None
        job.finished_at = _now()
        await job.save(
            update_fields=["status", "result", "progress", "error", "finished_at"]
        )
        logger.info("Job completed", job_id=str(job.id), job_type=job.type)

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        job.error = str(error)
        if job.attempts < job.max_attempts:
            delay = backoff_delay(job.attempts)
            job.status = JobStatus.DELAYED.value
            job.run_at = _now() + timedelta(seconds=delay)
            logger.warning(
                "Job failed, will retry",
                job_id=str(job.id),
                job_type=job.type,
                attempt=job.attempts,
                retry_in=delay,
                error=str(error),
            )
        else:
            job.status = JobStatus.FAILED.value
            job.finished_at = _now()
            logger.error(
                "Job failed",
                job_id=str(job.id),
                job_type=job.type,
                attempts=job.attempts,
                error=str(error),
            )
        await job.save(update_fields=["status", "error", "run_at", "finished_at"])


_job_manager: Optional[JobManager] = None


def get_job_manager() -> JobManager:
    """Process-wide job manager."""
    global _job_manager
    if _job_manager is None:
        _job_manager = JobManager()
    return _job_manager


def reset_job_manager() -> None:
    global _job_manager
    _job_manager = None
