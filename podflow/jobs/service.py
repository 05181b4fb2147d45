"""Job service: validate requests, create/cancel jobs and launch the orchestrator.

The HTTP routes and the CLI both go through these functions; neither talks
to the store or the orchestrator directly.
"""

from __future__ import annotations

import logging
from typing import Callable

from podflow.clients import Capabilities, RetryPolicy, build_capabilities
from podflow.config import Settings, get_settings
from podflow.jobs.errors import JobValidationError
from podflow.jobs.models import Job, JobParams, JobStatus
from podflow.jobs.orchestrator import JobOrchestrator
from podflow.jobs.store import JobStore, get_job_store

logger = logging.getLogger(__name__)

MARKUP_MAX = 1000.0

CapabilitiesFactory = Callable[[str, Settings], Capabilities]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def prepare_params(params: JobParams, max_items: int) -> tuple[JobParams, int]:
    """Return cleaned params and the item count, or raise ``JobValidationError``."""
    prompt = (params.prompt or "").strip()
    if not prompt:
        raise JobValidationError("Missing prompt")
    if not 0 <= params.markup <= MARKUP_MAX:
        raise JobValidationError(f"markup must be between 0 and {MARKUP_MAX:.0f}")

    upload_urls = [u.strip() for u in params.upload_urls if u and u.strip()]
    if params.image_mode == "upload" and not upload_urls:
        raise JobValidationError("imageMode 'upload' requires at least one upload URL")

    # Picks without both ids cannot drive selection; they are dropped, not rejected.
    picks = [p for p in params.selected_picks if p.blueprint_id and p.provider_id]
    if picks:
        picks = picks[:max_items]
        total = len(picks)
    else:
        total = min(max_items, max(1, params.quantity))

    cleaned = params.model_copy(update={
        "prompt": prompt,
        "quantity": total,
        "upload_urls": upload_urls,
        "selected_picks": picks,
    })
    return cleaned, total


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def create_job(
    params: JobParams,
    shop_id: str | None = None,
    store: JobStore | None = None,
    settings: Settings | None = None,
) -> Job:
    """Persist a new job and mark it in progress. Execution is scheduled by the caller."""
    settings = settings or get_settings()
    store = store or get_job_store()
    owner = (shop_id or settings.printify_shop_id or "").strip()
    if not owner:
        raise JobValidationError("Missing shopId")

    cleaned, total = prepare_params(params, settings.pod_max_items)
    job = store.create_job(cleaned, total=total, owner=owner)
    try:
        job = store.update_job(job.id, status=JobStatus.IN_PROGRESS)
    except Exception as e:
        logger.warning("[%s] Failed to flip job to in_progress: %s", job.id, e)
    logger.info("[%s] Created job: shop=%s total=%d mode=%s", job.id, owner, total, cleaned.image_mode)
    return job


def get_job(job_id: str, store: JobStore | None = None) -> Job:
    return (store or get_job_store()).get_job(job_id)


def list_jobs(shop_id: str | None = None, limit: int = 50, store: JobStore | None = None) -> list[Job]:
    return (store or get_job_store()).list_jobs(owner=shop_id, limit=limit)


def cancel_job(job_id: str, store: JobStore | None = None) -> Job:
    """Request cancellation. A job that already finished is returned unchanged."""
    store = store or get_job_store()
    job = store.get_job(job_id)
    if job.status.is_terminal:
        logger.info("[%s] Cancel ignored; job already %s", job_id, job.status.value)
        return job
    job = store.update_job(job_id, status=JobStatus.CANCELLED)
    logger.info("[%s] Cancel requested (completed=%d failed=%d)", job_id, job.completed, job.failed)
    return job


def ensure_resumable(job_id: str, store: JobStore | None = None) -> Job:
    job = (store or get_job_store()).get_job(job_id)
    if job.status.is_terminal:
        raise JobValidationError(f"Job {job_id} is already {job.status.value}")
    return job


# ---------------------------------------------------------------------------
# Execution entry point
# ---------------------------------------------------------------------------

def build_orchestrator(store: JobStore, capabilities: Capabilities, settings: Settings) -> JobOrchestrator:
    return JobOrchestrator(
        store,
        capabilities,
        content_retry=RetryPolicy(max_attempts=2, base_delay=settings.pod_content_retry_delay),
        item_timeout=settings.pod_item_timeout,
    )


def run_job(
    job_id: str,
    max_items: int | None = None,
    store: JobStore | None = None,
    settings: Settings | None = None,
    capabilities_factory: CapabilitiesFactory | None = None,
) -> Job:
    """Run (or resume) a job. Used by the background task and ``podflow run``.

    If the clients cannot be configured the job is marked failed and returned.
    The clients are closed when the run ends, however it ends.
    """
    settings = settings or get_settings()
    store = store or get_job_store()
    job = store.get_job(job_id)
    if job.status.is_terminal:
        return job
    factory = capabilities_factory or build_capabilities
    try:
        capabilities = factory(job.owner_ref, settings)
    except ValueError as e:
        logger.error("[%s] Runner could not start: %s", job_id, e)
        return store.update_job(job_id, status=JobStatus.FAILED)
    try:
        return build_orchestrator(store, capabilities, settings).run(job_id, max_items=max_items)
    finally:
        capabilities.close()
