"""Capability protocols, the uniform failure contract and the retry policy.

Each capability is one retryable network operation. Clients raise
``ExternalCallError`` for every upstream failure; what to retry is decided by
the caller through a ``RetryPolicy``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeVar

from podflow.schemas import (
    Blueprint,
    CatalogSnapshot,
    ContentSpec,
    CreatedProduct,
    ImageSpec,
    PrintArea,
    ProductContent,
    ProductSpec,
    Provider,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUSES = frozenset({502, 503, 504})


class ExternalCallError(Exception):
    """Failure of a third-party call. ``status`` is the upstream HTTP status when known."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(f"{status} - {message}" if status else message)
        self.status = status
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.status in TRANSIENT_STATUSES


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ExternalCallError) and exc.retryable


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-backoff retry. ``max_attempts`` counts the first call."""

    max_attempts: int = 1
    base_delay: float = 0.0
    retryable: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.retryable(e):
                    raise
                logger.warning(
                    "[Retry %d/%d] %s failed: %s. Retrying in %.1fs...",
                    attempt, self.max_attempts - 1, getattr(fn, "__name__", "call"), e, self.base_delay,
                )
                self.sleep(self.base_delay)
                attempt += 1


NO_RETRY = RetryPolicy()


# ---------------------------------------------------------------------------
# Capability protocols
# ---------------------------------------------------------------------------

class CatalogLookup(Protocol):
    def list_blueprints(self, scope_hint: str = "any") -> list[Blueprint]: ...
    def list_providers(self, blueprint_id: str) -> list[Provider]: ...
    def list_print_areas(self, blueprint_id: str, provider_id: str) -> list[PrintArea]: ...


class ImageProducer(Protocol):
    def produce_image(self, spec: ImageSpec) -> str:
        """Return the URL of the produced image."""
        ...


class ImageUploader(Protocol):
    def upload_image(self, image_url: str, file_name: str) -> str:
        """Return the platform-native image id."""
        ...


class ContentGenerator(Protocol):
    def generate_content(self, spec: ContentSpec) -> ProductContent: ...


class ProductCreator(Protocol):
    def create_product(self, spec: ProductSpec) -> CreatedProduct: ...


class Publisher(Protocol):
    def publish_product(self, product_id: str) -> bool: ...


@dataclass
class Capabilities:
    """The six external operations the orchestrator depends on."""

    catalog: CatalogLookup
    images: ImageProducer
    uploader: ImageUploader
    content: ContentGenerator
    products: ProductCreator
    publisher: Publisher

    def close(self) -> None:
        """Close each distinct client that holds a connection pool."""
        seen: set[int] = set()
        for client in (self.catalog, self.images, self.uploader, self.content, self.products, self.publisher):
            close = getattr(client, "close", None)
            if id(client) in seen or not callable(close):
                continue
            seen.add(id(client))
            try:
                close()
            except Exception as e:
                logger.warning("Failed to close %s: %s", type(client).__name__, e)


def lookup_catalog(
    catalog: CatalogLookup,
    scope_hint: str = "any",
    blueprint_id: str | None = None,
    provider_id: str | None = None,
) -> CatalogSnapshot:
    """Compose the catalog calls into one snapshot, descending only as far as ids are given."""
    snapshot = CatalogSnapshot(blueprints=catalog.list_blueprints(scope_hint))
    if blueprint_id:
        snapshot.providers_by_blueprint[blueprint_id] = catalog.list_providers(blueprint_id)
        if provider_id:
            snapshot.print_areas[f"{blueprint_id}:{provider_id}"] = catalog.list_print_areas(
                blueprint_id, provider_id
            )
    return snapshot
