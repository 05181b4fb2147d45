"""Job-layer exceptions."""

from __future__ import annotations


class JobValidationError(ValueError):
    """Job request rejected before anything is persisted."""


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class StepError(Exception):
    """An item pipeline step could not complete. Fails the item, never the job."""

    def __init__(self, step: str, message: str):
        super().__init__(message)
        self.step = step
        self.message = message


class ItemTimeoutError(StepError):
    """Per-item wall-clock deadline passed."""
