"""fal.ai image producer: queued text-to-image generation and background removal."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from podflow.clients.base import ExternalCallError
from podflow.schemas import ImageSpec

logger = logging.getLogger(__name__)

PROMPT_MAX_CHARS = 1000

DESIGN_RULES = ". ".join([
    "Transparent background only; never place blocks, rectangles or solid backdrops",
    "Edges organic, flowing or distressed; avoid sharp 90-degree corners",
    "Design must look good on light and dark products",
    "Bold, eye-catching composition that works at thumbnail and poster sizes",
    "Avoid generic clip-art, over-busy detail and tiny unreadable text",
    "Clean, scalable elements with a central focus",
])


def build_image_prompt(spec: ImageSpec) -> str:
    parts = [spec.prompt.strip()]
    for label, value in (("Style", spec.style), ("Colors", spec.colors), ("Audience", spec.audience)):
        if value:
            parts.append(f"{label}: {value}")
    parts.append(DESIGN_RULES)
    return ". ".join(p for p in parts if p)[:PROMPT_MAX_CHARS]


def _first_image_url(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    images = data.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        return images[0].get("url")
    image = data.get("image")
    if isinstance(image, dict):
        return image.get("url")
    return None


class FalImageProducer:
    """Generates artwork from a prompt, or strips the background of an existing image."""

    def __init__(
        self,
        api_key: str,
        model: str = "fal-ai/nano-banana",
        background_model: str = "fal-ai/bria/background/remove",
        queue_url: str = "https://queue.fal.run",
        sync_url: str = "https://fal.run",
        timeout: float = 60.0,
        poll_interval: float = 5.0,
        max_polls: int = 60,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._model = model
        self._background_model = background_model
        self._queue_url = queue_url.rstrip("/")
        self._sync_url = sync_url.rstrip("/")
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._sleep = sleep
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={"Authorization": f"Key {api_key}"},
        )

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, url: str, json: dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.request(method, url, json=json)
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Image service {method} {url} failed: {e}") from e
        if response.status_code >= 400:
            raise ExternalCallError(f"Image service: {response.text[:300]}", status=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise ExternalCallError("Image service returned invalid JSON") from e

    def produce_image(self, spec: ImageSpec) -> str:
        if spec.source_url:
            return self.remove_background(spec.source_url)
        return self.generate(spec)

    def remove_background(self, image_url: str) -> str:
        data = self._call("POST", f"{self._sync_url}/{self._background_model}", json={"image_url": image_url})
        url = _first_image_url(data)
        if not url:
            raise ExternalCallError("Background removal returned no image")
        return url

    def generate(self, spec: ImageSpec) -> str:
        body: dict[str, Any] = {
            "prompt": build_image_prompt(spec),
            "num_images": 1,
            "sync_mode": False,
        }
        if spec.width and spec.height:
            body["image_size"] = {"width": spec.width, "height": spec.height}

        queued = self._call("POST", f"{self._queue_url}/{self._model}", json=body)
        request_id = queued.get("request_id") if isinstance(queued, dict) else None
        if not request_id:
            raise ExternalCallError("Image generation was not queued")

        base = f"{self._queue_url}/{self._model}/requests/{request_id}"
        for _ in range(self._max_polls):
            self._sleep(self._poll_interval)
            status = self._call("GET", f"{base}/status")
            state = status.get("status") if isinstance(status, dict) else None
            if state == "COMPLETED":
                break
            if state == "FAILED":
                raise ExternalCallError(f"Image generation failed: {status.get('error') or 'unknown error'}")
        else:
            raise ExternalCallError("Image generation timed out", status=504)

        url = _first_image_url(self._call("GET", base))
        if not url:
            raise ExternalCallError("Image generation returned no image")
        logger.info("Generated image %s (request %s)", url, request_id)
        return url
