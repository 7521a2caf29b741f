"""Background jobs: persisted queue, workers and the daily sync scheduler."""

from .manager import (
    JobManager,
    JobPriority,
    JobStatus,
    JobType,
    get_job_manager,
    reset_job_manager,
    serialize_job,
)

__all__ = [
    "JobManager",
    "JobPriority",
    "JobStatus",
    "JobType",
    "get_job_manager",
    "reset_job_manager",
    "serialize_job",
]
