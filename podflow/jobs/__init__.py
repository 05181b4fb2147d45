"""Bulk product-creation jobs: models, storage, orchestration and service."""

from podflow.jobs.errors import ItemTimeoutError, JobNotFoundError, JobValidationError, StepError
from podflow.jobs.models import ItemPick, ItemResult, ItemStatus, ItemStep, Job, JobParams, JobStatus
from podflow.jobs.orchestrator import JobOrchestrator
from podflow.jobs.store import FileJobStore, JobStore, PostgresJobStore, get_job_store

__all__ = [
    "FileJobStore",
    "ItemPick",
    "ItemResult",
    "ItemStatus",
    "ItemStep",
    "ItemTimeoutError",
    "Job",
    "JobNotFoundError",
    "JobOrchestrator",
    "JobParams",
    "JobStatus",
    "JobStore",
    "JobValidationError",
    "PostgresJobStore",
    "StepError",
    "get_job_store",
]
