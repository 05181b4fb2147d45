"""Pytest configuration and shared fixtures: in-process capability fakes and a file job store."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from podflow.clients.base import Capabilities, ExternalCallError, RetryPolicy
from podflow.config import Settings
from podflow.jobs.models import JobParams
from podflow.jobs.orchestrator import JobOrchestrator
from podflow.jobs.store import FileJobStore
from podflow.schemas import (
    Blueprint,
    ContentSpec,
    CreatedProduct,
    ImageSpec,
    PrintArea,
    ProductContent,
    ProductSpec,
    Provider,
)

SHOP_ID = "shop-1"

TEE = Blueprint(id=5, title="Unisex Heavy Cotton Tee", brand="Gildan", model="5000")
HOODIE = Blueprint(id=77, title="Unisex Heavy Blend Hooded Sweatshirt", brand="Gildan", model="18500")
MUG = Blueprint(id=68, title="Ceramic Mug 11oz", brand="Generic", model="")


# ---------------------------------------------------------------------------
# Capability fakes
# ---------------------------------------------------------------------------

class FakeCatalog:
    def __init__(self):
        self.blueprints = [TEE, HOODIE, MUG]
        self.providers = [Provider(id=1, title="Monster Digital"), Provider(id=29, title="SwiftPOD")]
        self.areas = [
            PrintArea(position="front", width=4500, height=5400),
            PrintArea(position="back", width=4500, height=5400),
        ]
        self.calls: list[tuple] = []

    def list_blueprints(self, scope_hint: str = "any") -> list[Blueprint]:
        self.calls.append(("blueprints", scope_hint))
        return list(self.blueprints)

    def list_providers(self, blueprint_id: str) -> list[Provider]:
        self.calls.append(("providers", blueprint_id))
        return list(self.providers)

    def list_print_areas(self, blueprint_id: str, provider_id: str) -> list[PrintArea]:
        self.calls.append(("print_areas", blueprint_id, provider_id))
        return list(self.areas)


class FakeImages:
    def __init__(self):
        self.specs: list[ImageSpec] = []
        self.fail_calls: set[int] = set()

    def produce_image(self, spec: ImageSpec) -> str:
        self.specs.append(spec)
        n = len(self.specs)
        if n in self.fail_calls:
            raise ExternalCallError("image backend exploded", status=500)
        if spec.source_url:
            return spec.source_url.replace(".png", "-nobg.png")
        return f"https://img.test/generated-{n}.png"


class FakeUploader:
    def __init__(self):
        self.uploads: list[tuple[str, str]] = []

    def upload_image(self, image_url: str, file_name: str) -> str:
        self.uploads.append((image_url, file_name))
        return f"upl_{len(self.uploads)}"


class FakeContent:
    def __init__(self):
        self.specs: list[ContentSpec] = []
        self.errors: list[Exception] = []

    def generate_content(self, spec: ContentSpec) -> ProductContent:
        self.specs.append(spec)
        if self.errors:
            raise self.errors.pop(0)
        return ProductContent(
            title=f"{spec.product_title}: {spec.prompt}",
            description="A great product.",
            tags=["dog", "funny"],
            key_features=["Soft"],
            materials=["cotton"],
        )


class FakeProducts:
    def __init__(self):
        self.specs: list[ProductSpec] = []
        self.fail_calls: set[int] = set()
        self.on_create: Callable[[int], Any] | None = None

    def create_product(self, spec: ProductSpec) -> CreatedProduct:
        self.specs.append(spec)
        n = len(self.specs)
        if self.on_create:
            self.on_create(n)
        if n in self.fail_calls:
            raise ExternalCallError("Printify POST /shops/shop-1/products.json: boom", status=500)
        return CreatedProduct(product_id=f"prod_{n}", title=spec.content.title)


class FakePublisher:
    def __init__(self):
        self.published: list[str] = []
        self.error: Exception | None = None
        self.confirm = True

    def publish_product(self, product_id: str) -> bool:
        if self.error:
            raise self.error
        self.published.append(product_id)
        return self.confirm


def make_capabilities() -> Capabilities:
    return Capabilities(
        catalog=FakeCatalog(),
        images=FakeImages(),
        uploader=FakeUploader(),
        content=FakeContent(),
        products=FakeProducts(),
        publisher=FakePublisher(),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store(tmp_path):
    return FileJobStore(tmp_path)


@pytest.fixture
def caps():
    return make_capabilities()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(store, caps, sleeps):
    return JobOrchestrator(
        store,
        caps,
        content_retry=RetryPolicy(max_attempts=2, base_delay=2.0, sleep=sleeps.append),
    )


@pytest.fixture
def make_job(store):
    """Create a job directly in the store: ``make_job(total=3, prompt=..., **params)``."""

    def _make(total: int = 3, prompt: str = "funny dog", **params):
        return store.create_job(JobParams(prompt=prompt, quantity=total, **params), total=total, owner=SHOP_ID)

    return _make


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        pod_data_dir=str(tmp_path),
        pod_database_url=None,
        printify_shop_id=SHOP_ID,
        pod_max_items=50,
    )


@pytest.fixture
def shop_id():
    return SHOP_ID


@pytest.fixture
def hoodie():
    return HOODIE


@pytest.fixture
def mug():
    return MUG


@pytest.fixture
def caps_factory():
    """Stand-in for ``build_capabilities``: fresh fakes for whatever shop is asked for."""
    return lambda _shop_id, _settings=None: make_capabilities()
