"""External capability clients behind narrow protocols."""

from __future__ import annotations

from podflow.clients.base import (
    Capabilities,
    CatalogLookup,
    ContentGenerator,
    ExternalCallError,
    ImageProducer,
    ImageUploader,
    ProductCreator,
    Publisher,
    RetryPolicy,
    lookup_catalog,
)
from podflow.config import Settings, get_settings


def build_capabilities(shop_id: str, settings: Settings | None = None) -> Capabilities:
    """Wire the production clients for one shop from settings."""
    from podflow.clients.content import LLMContentGenerator
    from podflow.clients.images import FalImageProducer
    from podflow.clients.printify import PrintifyClient
    from podflow.llm import provider_from_settings

    settings = settings or get_settings()
    if not settings.printify_api_key:
        raise ValueError("PRINTIFY_API_KEY is not configured.")
    if not settings.fal_key:
        raise ValueError("FAL_KEY is not configured.")
    llm = provider_from_settings(settings)
    printify = PrintifyClient(
        api_key=settings.printify_api_key,
        shop_id=shop_id,
        base_url=settings.printify_base_url,
        timeout=settings.pod_http_timeout,
    )
    images = FalImageProducer(
        api_key=settings.fal_key,
        model=settings.pod_image_model,
        background_model=settings.pod_background_model,
        timeout=settings.pod_http_timeout,
    )
    return Capabilities(
        catalog=printify,
        images=images,
        uploader=printify,
        content=LLMContentGenerator(llm),
        products=printify,
        publisher=printify,
    )


__all__ = [
    "Capabilities",
    "CatalogLookup",
    "ContentGenerator",
    "ExternalCallError",
    "ImageProducer",
    "ImageUploader",
    "ProductCreator",
    "Publisher",
    "RetryPolicy",
    "build_capabilities",
    "lookup_catalog",
]
