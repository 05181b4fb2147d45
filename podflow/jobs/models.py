"""Bulk product-creation job schema, per-item results and status enums."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ERROR_MAX_CHARS = 500

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_error(text: Any, limit: int = ERROR_MAX_CHARS) -> str:
    """Strip control characters and cap length so the text is safe to store in JSONB."""
    raw = str(text) if text is not None else ""
    return _CONTROL_CHARS_RE.sub(" ", raw).strip()[:limit]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def can_transition(self, to: "JobStatus") -> bool:
        """Monotonic state machine: queued -> in_progress -> terminal."""
        if self.is_terminal:
            return False
        if self is JobStatus.QUEUED:
            return to is not JobStatus.QUEUED
        return to.is_terminal


class ItemStatus(str, Enum):
    PENDING = "pending"
    CREATED = "created"
    PUBLISHED = "published"
    FAILED = "failed"


class ItemStep(str, Enum):
    INIT = "init"
    BLUEPRINT = "blueprint"
    PROVIDER = "provider"
    PRINT_AREAS = "print-areas"
    IMAGE_READY = "image-ready"
    IMAGE_UPLOADED = "image-uploaded"
    CONTENT_READY = "content-ready"
    PRODUCT_CREATED = "product-created"
    PUBLISHED = "published"
    ERROR = "error"


class ItemPick(BaseModel):
    """Explicit per-item catalog choice supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    blueprint_id: str | None = None
    provider_id: str | None = None
    print_areas: list[str] = Field(default_factory=list)
    title: str = ""
    category: str | None = None

    @field_validator("blueprint_id", "provider_id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str | None:
        return None if v in (None, "") else str(v)

    @field_validator("print_areas", mode="before")
    @classmethod
    def _lower_positions(cls, v: Any) -> list[str]:
        return [str(p).lower() for p in (v or []) if str(p).strip()]


class JobParams(BaseModel):
    """Immutable job input. Stored verbatim in the job row."""

    model_config = ConfigDict(frozen=True)

    prompt: str
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
    blueprint_id: str | None = None
    provider_id: str | None = None
    print_areas: list[str] = Field(default_factory=list)
    publish_mode: Literal["draft", "publish"] = "draft"
    markup: float = 40.0
    selected_picks: list[ItemPick] = Field(default_factory=list)

    @field_validator("blueprint_id", "provider_id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str | None:
        return None if v in (None, "") else str(v)

    @field_validator("print_areas", mode="before")
    @classmethod
    def _lower_positions(cls, v: Any) -> list[str]:
        return [str(p).lower() for p in (v or []) if str(p).strip()]

    @property
    def wants_transparent(self) -> bool:
        return self.remove_bg or self.background == "transparent"

    def pick_for(self, i: int) -> ItemPick:
        """Override for item ``i`` (0-based), falling back to job-level hints."""
        pick = self.selected_picks[i] if i < len(self.selected_picks) else None
        return ItemPick(
            blueprint_id=(pick and pick.blueprint_id) or self.blueprint_id,
            provider_id=(pick and pick.provider_id) or self.provider_id,
            print_areas=(pick.print_areas if pick and pick.print_areas else self.print_areas),
            title=pick.title if pick else "",
            category=pick.category if pick else None,
        )


class ItemResult(BaseModel):
    """Progress and outcome of one item. Replaced by index as the item advances."""

    index: int = Field(ge=1)
    step: ItemStep = ItemStep.INIT
    status: ItemStatus = ItemStatus.PENDING
    message: str = ""
    image_url: str | None = None
    product_id: str | None = None
    title: str | None = None
    error: str | None = None
    publish_error: str | None = None
    blueprint_id: str | None = None
    provider_id: str | None = None
    position: str | None = None

    @field_validator("error", "publish_error", mode="before")
    @classmethod
    def _sanitize(cls, v: Any) -> str | None:
        return None if v is None else sanitize_error(v)

    @field_validator("message", mode="before")
    @classmethod
    def _sanitize_message(cls, v: Any) -> str:
        return sanitize_error(v)


class Job(BaseModel):
    """Durable unit of work, persisted for resumable execution and polling."""

    id: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    owner_ref: str = ""
    params: JobParams
    status: JobStatus = JobStatus.QUEUED
    total: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    next_index: int = Field(default=0, ge=0)
    results: list[ItemResult] = Field(default_factory=list)

    def result_for(self, index: int) -> ItemResult | None:
        for r in self.results:
            if r.index == index:
                return r
        return None

    def with_result(self, item: ItemResult) -> list[ItemResult]:
        """Results list with ``item`` replacing any entry of the same index, ordered by index."""
        kept = [r for r in self.results if r.index != item.index]
        kept.append(item)
        return sorted(kept, key=lambda r: r.index)

    def summary(self) -> dict[str, Any]:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
        }
