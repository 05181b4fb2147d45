"""Pydantic models exchanged with the external capability clients.

Catalog entries are normalized at the client boundary; the orchestrator and
selection policies only ever see these shapes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


def _as_id(v: Any) -> str:
    return "" if v is None else str(v)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Blueprint(BaseModel):
    """Catalog product template, independent of the fulfillment provider."""

    id: str
    title: str = ""
    brand: str = ""
    model: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str:
        return _as_id(v)


class Provider(BaseModel):
    """Print partner able to produce a blueprint."""

    id: str
    title: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str:
        return _as_id(v)


class PrintArea(BaseModel):
    """Named placement region with pixel dimensions."""

    position: str = "front"
    width: int = 0
    height: int = 0

    @property
    def size_key(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def pixels(self) -> int:
        return self.width * self.height


class CatalogSnapshot(BaseModel):
    """Result of one catalog lookup: blueprints plus whatever providers/areas were resolved."""

    blueprints: list[Blueprint] = Field(default_factory=list)
    providers_by_blueprint: dict[str, list[Provider]] = Field(default_factory=dict)
    print_areas: dict[str, list[PrintArea]] = Field(default_factory=dict)  # "<bp>:<provider>" -> areas


# ---------------------------------------------------------------------------
# Capability call specs and payloads
# ---------------------------------------------------------------------------

class ImageSpec(BaseModel):
    prompt: str = ""
    source_url: str | None = None
    width: int = 0
    height: int = 0
    transparent: bool = False
    style: str = ""
    colors: str = ""
    audience: str = ""

    @property
    def size_key(self) -> str:
        return f"{self.width}x{self.height}"


class ContentSpec(BaseModel):
    prompt: str
    product_title: str = "Product"
    style: str = ""
    colors: str = ""
    audience: str = ""
    tone: str = ""
    language: str = "en-US"
    brand: str = ""


class ProductContent(BaseModel):
    """Listing copy. Bounds are enforced by ``podflow.content.normalize_content``."""

    title: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    key_features: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)


class ProductSpec(BaseModel):
    shop_id: str
    blueprint: Blueprint
    provider: Provider
    print_area: PrintArea
    image_id: str
    content: ProductContent
    markup: float = 40.0


class CreatedProduct(BaseModel):
    product_id: str
    title: str = ""

    @field_validator("product_id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str:
        return _as_id(v)
