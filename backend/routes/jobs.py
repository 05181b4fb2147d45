"""Bulk product job API.

POST /api/jobs
  → Validates the request, persists the job and returns its summary
    immediately. The orchestrator runs as a background task.

GET /api/jobs/{job_id}
  → Latest persisted snapshot with per-item results. Never waits on the worker.

POST /api/jobs/{job_id}/cancel
  → Cooperative cancel; the item in flight finishes, later items are skipped.

POST /api/jobs/{job_id}/resume
  → Re-schedules a non-terminal job from its ``next_index``.

GET /api/jobs
  → Recent jobs, newest first.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Literal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from podflow.config import Settings, get_settings
from podflow.jobs import (
    ItemResult,
    Job,
    JobNotFoundError,
    JobParams,
    JobStore,
    JobValidationError,
    get_job_store,
)
from podflow.jobs import service

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    """Accepts both ``snake_case`` and ``camelCase`` keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PickRequest(_CamelModel):
    blueprint_id: str | int | None = None
    provider_id: str | int | None = None
    print_areas: list[str] = Field(default_factory=list)
    title: str = ""
    category: str | None = None


class CreateJobRequest(_CamelModel):
    """Body for POST /api/jobs."""

    shop_id: str | int | None = None
    prompt: str = ""
    quantity: int = 1
    product_scope: str = "any"
    image_mode: Literal["generate", "upload"] = "generate"
    upload_urls: list[str] = Field(default_factory=list)
    remove_bg: bool = False
    background: str | None = None
    style: str = ""
    colors: str = ""
    audience: str = ""
    tone: str = ""
    language: str = "en-US"
    provider_pref: str = ""
    brand_pref: str = ""
    blueprint_id: str | int | None = None
    provider_id: str | int | None = None
    print_areas: list[str] = Field(default_factory=list)
    publish_mode: Literal["draft", "publish"] = "draft"
    markup: float = 40.0
    selected_picks: list[PickRequest] = Field(default_factory=list)

    def to_params(self) -> JobParams:
        return JobParams.model_validate(self.model_dump(exclude={"shop_id"}))


class JobSummaryResponse(BaseModel):
    job_id: str
    status: str
    total: int
    completed: int
    failed: int


class JobSnapshotResponse(JobSummaryResponse):
    next_index: int
    shop_id: str
    results: list[ItemResult]
    created_at: datetime
    updated_at: datetime


def _snapshot(job: Job) -> JobSnapshotResponse:
    return JobSnapshotResponse(
        **job.summary(),
        next_index=job.next_index,
        shop_id=job.owner_ref,
        results=job.results,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


# ---------------------------------------------------------------------------
# Background execution
# ---------------------------------------------------------------------------

def _run_in_background(job_id: str) -> None:
    try:
        job = service.run_job(job_id)
    except Exception:
        # Failed at start, or left in progress for a resume.
        logger.exception("[%s] Background run aborted", job_id)
        return
    logger.info("[%s] Background run finished with status %s", job_id, job.status.value)


def get_job_runner() -> Callable[[str], Any]:
    return _run_in_background


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/jobs", response_model=JobSummaryResponse, status_code=status.HTTP_201_CREATED)
async def create_job(
    request: CreateJobRequest,
    background_tasks: BackgroundTasks,
    store: JobStore = Depends(get_job_store),
    settings: Settings = Depends(get_settings),
    runner: Callable[[str], Any] = Depends(get_job_runner),
):
    """Create a job and schedule its execution without awaiting it."""
    shop_id = str(request.shop_id) if request.shop_id not in (None, "") else None
    try:
        job = service.create_job(request.to_params(), shop_id=shop_id, store=store, settings=settings)
    except JobValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    background_tasks.add_task(runner, job.id)
    return JobSummaryResponse(**job.summary())


@router.get("/jobs", response_model=list[JobSummaryResponse])
async def list_jobs(
    shop_id: str | None = Query(None, alias="shopId"),
    limit: int = Query(50, ge=1, le=200),
    store: JobStore = Depends(get_job_store),
):
    """Recent jobs, newest first."""
    return [JobSummaryResponse(**j.summary()) for j in service.list_jobs(shop_id, limit, store=store)]


@router.get("/jobs/{job_id}", response_model=JobSnapshotResponse)
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)):
    """Latest persisted snapshot of a job."""
    try:
        return _snapshot(service.get_job(job_id, store=store))
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")


@router.post("/jobs/{job_id}/cancel", response_model=JobSnapshotResponse)
async def cancel_job(job_id: str, store: JobStore = Depends(get_job_store)):
    """Request cancellation; returns the updated snapshot."""
    try:
        return _snapshot(service.cancel_job(job_id, store=store))
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")


@router.post("/jobs/{job_id}/resume", response_model=JobSummaryResponse, status_code=status.HTTP_202_ACCEPTED)
async def resume_job(
    job_id: str,
    background_tasks: BackgroundTasks,
    store: JobStore = Depends(get_job_store),
    runner: Callable[[str], Any] = Depends(get_job_runner),
):
    """Re-schedule a job that stopped before finishing (e.g. after a worker restart)."""
    try:
        job = service.ensure_resumable(job_id, store=store)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    except JobValidationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    background_tasks.add_task(runner, job.id)
    return JobSummaryResponse(**job.summary())
