"""Printify REST client: catalog lookup, image upload, product creation, publish.

All responses pass through one normalizer per endpoint so the rest of the code
only deals with ``podflow.schemas`` models. Any transport failure or non-2xx
response becomes ``ExternalCallError``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from podflow.clients.base import ExternalCallError
from podflow.pricing import price_cents
from podflow.schemas import Blueprint, CreatedProduct, PrintArea, ProductSpec, Provider

logger = logging.getLogger(__name__)

MAX_VARIANTS = 100
PRINTIFY_TITLE_MAX = 75

_EMOJI_RE = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF]")


def printify_title(title: str) -> str:
    """Printify rejects long titles; strip emoji and clamp to 75 chars."""
    s = _EMOJI_RE.sub("", title or "")
    s = re.sub(r"\s+", " ", s).strip()
    if len(s) > PRINTIFY_TITLE_MAX:
        s = s[:PRINTIFY_TITLE_MAX].rstrip(" -_,.")
    return s or "Untitled Product"


# ---------------------------------------------------------------------------
# Response normalizers
# ---------------------------------------------------------------------------

def _expect_list(data: Any, what: str) -> list[dict]:
    # Catalog list endpoints return a bare JSON array; paginated ones wrap it in "data".
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        data = data["data"]
    if not isinstance(data, list):
        raise ExternalCallError(f"Unexpected {what} response shape")
    return [d for d in data if isinstance(d, dict)]


def normalize_blueprints(data: Any) -> list[Blueprint]:
    return [
        Blueprint(id=b["id"], title=b.get("title") or "", brand=b.get("brand") or "", model=b.get("model") or "")
        for b in _expect_list(data, "blueprints")
        if b.get("id") is not None
    ]


def normalize_providers(data: Any) -> list[Provider]:
    return [
        Provider(id=p["id"], title=p.get("title") or "")
        for p in _expect_list(data, "print providers")
        if p.get("id") is not None
    ]


def normalize_variants(data: Any) -> list[dict]:
    """Available variants only, capped at the platform's per-product limit."""
    variants = data.get("variants") if isinstance(data, dict) else data
    if not isinstance(variants, list):
        raise ExternalCallError("Unexpected variants response shape")
    available = [
        v for v in variants
        if isinstance(v, dict) and v.get("is_available") is not False and v.get("is_in_stock") is not False
    ]
    return available[:MAX_VARIANTS]


def print_areas_from_variants(variants: list[dict]) -> list[PrintArea]:
    """One area per position (first seen order), keeping the largest placeholder."""
    by_position: dict[str, PrintArea] = {}
    for v in variants:
        for ph in v.get("placeholders") or []:
            position = str(ph.get("position") or "").lower()
            if not position:
                continue
            area = PrintArea(position=position, width=int(ph.get("width") or 0), height=int(ph.get("height") or 0))
            current = by_position.get(position)
            if current is None or area.pixels > current.pixels:
                by_position[position] = area
    return list(by_position.values())


def normalize_upload(data: Any) -> str:
    image_id = data.get("id") if isinstance(data, dict) else None
    if not image_id:
        raise ExternalCallError("Upload response carried no image id")
    return str(image_id)


def normalize_created_product(data: Any) -> CreatedProduct:
    product_id = data.get("id") if isinstance(data, dict) else None
    if not product_id:
        raise ExternalCallError("Product creation response carried no product id")
    return CreatedProduct(product_id=product_id, title=data.get("title") or "")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class PrintifyClient:
    """Catalog, uploader, product creator and publisher backed by the Printify API."""

    def __init__(
        self,
        api_key: str,
        shop_id: str | None = None,
        base_url: str = "https://api.printify.com/v1",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ):
        self._shop_id = shop_id
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "User-Agent": "podflow",
            },
        )
        self._variants: dict[tuple[str, str], list[dict]] = {}

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Printify {method} {path} failed: {e}") from e
        if response.status_code >= 400:
            raise ExternalCallError(
                f"Printify {method} {path}: {response.text[:300]}", status=response.status_code
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ExternalCallError(f"Printify {method} {path} returned invalid JSON") from e

    # -- CatalogLookup ------------------------------------------------------

    def list_blueprints(self, scope_hint: str = "any") -> list[Blueprint]:
        # The catalog endpoint has no server-side filter; scope is applied by the selection policy.
        return normalize_blueprints(self._request("GET", "/catalog/blueprints.json"))

    def list_providers(self, blueprint_id: str) -> list[Provider]:
        return normalize_providers(
            self._request("GET", f"/catalog/blueprints/{blueprint_id}/print_providers.json")
        )

    def _variants_for(self, blueprint_id: str, provider_id: str) -> list[dict]:
        key = (str(blueprint_id), str(provider_id))
        if key not in self._variants:
            self._variants[key] = normalize_variants(self._request(
                "GET",
                f"/catalog/blueprints/{blueprint_id}/print_providers/{provider_id}/variants.json",
            ))
        return self._variants[key]

    def list_print_areas(self, blueprint_id: str, provider_id: str) -> list[PrintArea]:
        return print_areas_from_variants(self._variants_for(blueprint_id, provider_id))

    # -- ImageUploader ------------------------------------------------------

    def upload_image(self, image_url: str, file_name: str) -> str:
        return normalize_upload(
            self._request("POST", "/uploads/images.json", json={"file_name": file_name, "url": image_url})
        )

    # -- ProductCreator -----------------------------------------------------

    def build_product_payload(self, spec: ProductSpec, variants: list[dict]) -> dict[str, Any]:
        variant_payload = [
            {
                "id": v["id"],
                "price": price_cents(v.get("cost"), spec.markup),
                "is_enabled": True,
                "is_default": i == 0,
            }
            for i, v in enumerate(variants)
        ]
        return {
            "title": printify_title(spec.content.title or spec.blueprint.title),
            "description": spec.content.description,
            "tags": spec.content.tags,
            "blueprint_id": int(spec.blueprint.id),
            "print_provider_id": int(spec.provider.id),
            "variants": variant_payload,
            "print_areas": [
                {
                    "variant_ids": [v["id"] for v in variants],
                    "placeholders": [
                        {
                            "position": spec.print_area.position,
                            "images": [{"id": spec.image_id, "x": 0.5, "y": 0.5, "scale": 1.0, "angle": 0}],
                        }
                    ],
                }
            ],
        }

    def create_product(self, spec: ProductSpec) -> CreatedProduct:
        variants = self._variants_for(spec.blueprint.id, spec.provider.id)
        if not variants:
            raise ExternalCallError(
                f"No variants available for blueprint {spec.blueprint.id} with provider {spec.provider.id}"
            )
        shop_id = spec.shop_id or self._shop_id
        payload = self.build_product_payload(spec, variants)
        logger.info(
            "Creating product shop=%s blueprint=%s provider=%s position=%s variants=%d",
            shop_id, spec.blueprint.id, spec.provider.id, spec.print_area.position, len(variants),
        )
        return normalize_created_product(self._request("POST", f"/shops/{shop_id}/products.json", json=payload))

    # -- Publisher ----------------------------------------------------------

    def publish_product(self, product_id: str) -> bool:
        self._request(
            "POST",
            f"/shops/{self._shop_id}/products/{product_id}/publish.json",
            json={
                "title": True,
                "description": True,
                "images": True,
                "variants": True,
                "tags": True,
                "key_features": True,
                "shipping_template": True,
            },
        )
        return True
