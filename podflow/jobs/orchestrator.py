"""Bulk product-creation orchestrator.

Drives one job through its items, one item at a time:

    blueprint → provider → print-areas → image-ready → image-uploaded
      → content-ready → product-created → (published)

The item's partial result is persisted after every step so status polling
shows live progress. A failing step fails only its item. After each item the
counters and ``next_index`` are written in one update, so a restarted worker
resumes at ``next_index`` without redoing or double-counting finished items.
Cancellation is cooperative and checked before each item.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from podflow.clients.base import Capabilities, ExternalCallError, RetryPolicy, lookup_catalog
from podflow.content import normalize_content
from podflow.jobs.errors import ItemTimeoutError, JobNotFoundError, StepError
from podflow.jobs.models import (
    ItemPick,
    ItemResult,
    ItemStatus,
    ItemStep,
    Job,
    JobParams,
    JobStatus,
)
from podflow.jobs.store import JobStore
from podflow.schemas import (
    Blueprint,
    ContentSpec,
    ImageSpec,
    PrintArea,
    ProductContent,
    ProductSpec,
    Provider,
)
from podflow.selection import (
    choose_blueprint,
    choose_print_area,
    choose_provider,
    classify_product_type,
)

logger = logging.getLogger(__name__)

TRANSPARENT_SUFFIX = " with transparent background, no background"
DEFAULT_ITEM_TIMEOUT = 600.0
DEFAULT_CONTENT_RETRY = RetryPolicy(max_attempts=2, base_delay=2.0)


def blueprint_hint(params: JobParams) -> str:
    """Text the blueprint classifier runs on: the prompt, else the declared product scope."""
    if classify_product_type(params.prompt) != "any":
        return params.prompt
    return params.product_scope or params.prompt


def generation_prompt(params: JobParams) -> str:
    # Background removal only works on existing rasters; for generation the prompt carries it.
    return f"{params.prompt}{TRANSPARENT_SUFFIX}" if params.wants_transparent else params.prompt


def file_name_from_url(url: str) -> str:
    name = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return name or "design.png"


def resolve_status(completed: int, failed: int) -> JobStatus:
    """Terminal status once every item is accounted for."""
    if completed == 0 and failed > 0:
        return JobStatus.FAILED
    return JobStatus.COMPLETED


@dataclass
class _ItemRun:
    job: Job
    index: int  # 1-based
    pick: ItemPick
    deadline: float
    result: ItemResult
    current_step: ItemStep = ItemStep.INIT


class JobOrchestrator:
    """Single execution entry point for a job, used by background tasks and the CLI alike."""

    def __init__(
        self,
        store: JobStore,
        capabilities: Capabilities,
        *,
        content_retry: RetryPolicy = DEFAULT_CONTENT_RETRY,
        item_timeout: float = DEFAULT_ITEM_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._caps = capabilities
        self._content_retry = content_retry
        self._item_timeout = item_timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Job loop
    # ------------------------------------------------------------------

    def run(self, job_id: str, max_items: int | None = None) -> Job:
        """Process items from ``next_index`` on. ``max_items`` bounds one tick of work.

        A job that cannot be started is marked failed. A store error after that
        leaves the job in progress so a later run resumes at ``next_index``.
        """
        try:
            job = self._start(job_id)
        except JobNotFoundError:
            raise
        except Exception:
            logger.exception("[%s] Could not start job", job_id)
            try:
                self._store.update_job(job_id, status=JobStatus.FAILED)
            except Exception as e:
                logger.error("[%s] Failed to mark job failed: %s", job_id, e)
            raise
        if job.status.is_terminal:
            return job

        try:
            return self._run_items(job, max_items)
        except Exception:
            logger.exception("[%s] Run interrupted; job stays resumable", job_id)
            raise

    def _start(self, job_id: str) -> Job:
        job = self._store.get_job(job_id)
        logger.info(
            "[%s] Job snapshot: status=%s total=%d completed=%d failed=%d next_index=%d",
            job_id, job.status.value, job.total, job.completed, job.failed, job.next_index,
        )
        if job.status is JobStatus.QUEUED:
            job = self._store.update_job(job.id, status=JobStatus.IN_PROGRESS)
        return job

    def _run_items(self, job: Job, max_items: int | None) -> Job:
        completed, failed = job.completed, job.failed
        processed = 0

        for i in range(job.next_index, job.total):
            if max_items is not None and processed >= max_items:
                return job
            current = self._store.get_job(job.id)
            if current.status is JobStatus.CANCELLED:
                logger.info("[%s] Cancelled; stopping before item %d", job.id, i + 1)
                return current

            item = self._process_item(job, i)
            if item.status is ItemStatus.FAILED:
                failed += 1
            else:
                completed += 1
            job = self._store.update_job(
                job.id, completed=completed, failed=failed, next_index=i + 1, results=job.with_result(item),
            )
            processed += 1

        final = resolve_status(completed, failed)
        job = self._store.update_job(job.id, status=final)
        logger.info(
            "[%s] Processing complete. Status: %s, Completed: %d, Failed: %d",
            job.id, job.status.value, completed, failed,
        )
        return job

    # ------------------------------------------------------------------
    # One item
    # ------------------------------------------------------------------

    def _process_item(self, job: Job, i: int) -> ItemResult:
        index = i + 1
        run = _ItemRun(
            job=job,
            index=index,
            pick=job.params.pick_for(i),
            deadline=self._clock() + self._item_timeout,
            result=ItemResult(index=index, step=ItemStep.INIT, message="Starting item"),
        )
        logger.info("[%s] Processing index %d", job.id, index)
        self._persist(run)

        try:
            self._run_pipeline(run)
        except StepError as e:
            self._fail(run, e.step, e.message)
        except ExternalCallError as e:
            self._fail(run, run.current_step.value, str(e))
        except Exception as e:
            logger.exception("[%s] Unexpected error processing index %d", job.id, index)
            self._fail(run, run.current_step.value, f"{type(e).__name__}: {e}")
        return run.result

    def _run_pipeline(self, run: _ItemRun) -> None:
        params = run.job.params
        caps = self._caps

        with self._step(run, ItemStep.BLUEPRINT, "blueprint lookup failed"):
            snapshot = lookup_catalog(caps.catalog, params.product_scope)
            blueprint = choose_blueprint(snapshot.blueprints, blueprint_hint(params), run.pick.blueprint_id)
        self._advance(run, ItemStep.BLUEPRINT, f"Blueprint {blueprint.id}", blueprint_id=blueprint.id)

        with self._step(run, ItemStep.PROVIDER, "provider lookup failed"):
            providers = caps.catalog.list_providers(blueprint.id)
            provider = choose_provider(providers, params.provider_pref, run.pick.provider_id)
        self._advance(run, ItemStep.PROVIDER, f"Provider {provider.id}", provider_id=provider.id)

        with self._step(run, ItemStep.PRINT_AREAS, "print area lookup failed"):
            areas = caps.catalog.list_print_areas(blueprint.id, provider.id)
            area = choose_print_area(areas, params.prompt, run.pick.print_areas)
        self._advance(
            run, ItemStep.PRINT_AREAS, f"Pos {area.position} Size {area.size_key}", position=area.position,
        )

        with self._step(run, ItemStep.IMAGE_READY, "image generation/upload failed"):
            image_url = self._prepare_image(run, area)
        self._advance(run, ItemStep.IMAGE_READY, "Image prepared", image_url=image_url)

        with self._step(run, ItemStep.IMAGE_UPLOADED, "image upload failed"):
            image_id = caps.uploader.upload_image(image_url, file_name_from_url(image_url))
            if not image_id:
                raise StepError(ItemStep.IMAGE_UPLOADED.value, "image upload returned no id")
        self._advance(run, ItemStep.IMAGE_UPLOADED, f"Uploaded image {image_id}")

        with self._step(run, ItemStep.CONTENT_READY, "content generation failed"):
            content = self._generate_content(params, blueprint)
        self._advance(run, ItemStep.CONTENT_READY, "AI content generated", title=content.title)

        with self._step(run, ItemStep.PRODUCT_CREATED, "product creation failed"):
            product = caps.products.create_product(ProductSpec(
                shop_id=run.job.owner_ref,
                blueprint=blueprint,
                provider=provider,
                print_area=area,
                image_id=image_id,
                content=content,
                markup=params.markup,
            ))
        run.result = run.result.model_copy(update={"status": ItemStatus.CREATED})
        self._advance(
            run, ItemStep.PRODUCT_CREATED, f"Product {product.product_id}",
            product_id=product.product_id, title=content.title,
        )

        if params.publish_mode == "publish":
            self._publish(run, product.product_id)

    def _prepare_image(self, run: _ItemRun, area: PrintArea) -> str:
        params = run.job.params
        if params.image_mode == "upload":
            if not params.upload_urls:
                raise StepError(ItemStep.IMAGE_READY.value, "no upload URL available")
            source = params.upload_urls[(run.index - 1) % len(params.upload_urls)]
            if not params.wants_transparent:
                return source
            return self._caps.images.produce_image(ImageSpec(
                source_url=source, width=area.width, height=area.height, transparent=True,
            ))
        url = self._caps.images.produce_image(ImageSpec(
            prompt=generation_prompt(params),
            width=area.width,
            height=area.height,
            transparent=params.wants_transparent,
            style=params.style,
            colors=params.colors,
            audience=params.audience,
        ))
        if not url:
            raise StepError(ItemStep.IMAGE_READY.value, "image generation/upload failed")
        return url

    def _generate_content(self, params: JobParams, blueprint: Blueprint) -> ProductContent:
        spec = ContentSpec(
            prompt=params.prompt,
            product_title=blueprint.title or "Product",
            style=params.style,
            colors=params.colors,
            audience=params.audience,
            tone=params.tone,
            language=params.language,
            brand=params.brand_pref,
        )
        raw = self._content_retry.call(self._caps.content.generate_content, spec)
        # Listing bounds apply whatever the generator returned.
        return normalize_content(raw, fallback_title=spec.product_title)

    def _publish(self, run: _ItemRun, product_id: str) -> None:
        try:
            published = self._caps.publisher.publish_product(product_id)
            if not published:
                raise ExternalCallError("publish was not confirmed")
        except Exception as e:
            logger.warning("[%s] Index %d created but publish failed: %s", run.job.id, run.index, e)
            run.result = ItemResult.model_validate({
                **run.result.model_dump(),
                "status": ItemStatus.CREATED,
                "message": f"Product {product_id} created; publish failed",
                "publish_error": str(e),
            })
            self._persist(run)
            return
        run.result = run.result.model_copy(update={"status": ItemStatus.PUBLISHED})
        self._advance(run, ItemStep.PUBLISHED, f"Product {product_id} published")

    # ------------------------------------------------------------------
    # Step bookkeeping
    # ------------------------------------------------------------------

    @contextmanager
    def _step(self, run: _ItemRun, step: ItemStep, label: str) -> Iterator[None]:
        """Run one step: enforce the item deadline and turn upstream errors into a step failure."""
        if self._clock() > run.deadline:
            raise ItemTimeoutError(step.value, f"item timed out after {self._item_timeout:.0f}s before {step.value}")
        run.current_step = step
        try:
            yield
        except StepError:
            raise
        except ExternalCallError as e:
            raise StepError(step.value, f"{label}: {e}") from e

    def _advance(self, run: _ItemRun, step: ItemStep, message: str, **fields) -> None:
        run.result = ItemResult.model_validate(
            {**run.result.model_dump(), **fields, "step": step, "message": message}
        )
        logger.info("[%s] Index %d step %s OK: %s", run.job.id, run.index, step.value, message)
        self._persist(run)

    def _fail(self, run: _ItemRun, step: str, message: str) -> None:
        logger.warning("[%s] Index %d failed at %s: %s", run.job.id, run.index, step, message)
        run.result = ItemResult.model_validate({
            **run.result.model_dump(),
            "step": ItemStep.ERROR,
            "status": ItemStatus.FAILED,
            "message": f"{step}: {message}",
            "error": message,
        })

    def _persist(self, run: _ItemRun) -> None:
        """Best-effort progress write; the end-of-item update is authoritative."""
        try:
            self._store.update_job(run.job.id, results=run.job.with_result(run.result))
        except Exception as e:
            logger.warning("[%s] Failed to persist progress for index %d: %s", run.job.id, run.index, e)

