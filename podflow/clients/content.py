"""Listing copy generator backed by an LLM provider."""

from __future__ import annotations

import json
import logging
from typing import Any

from anthropic import APIError as AnthropicAPIError
from openai import APIError as OpenAIAPIError
from pydantic import BaseModel, ValidationError

from podflow.clients.base import ExternalCallError
from podflow.content import LIST_SIZE, TAG_MAX_CHARS, TITLE_MAX_CHARS, normalize_content
from podflow.llm import LLMProvider
from podflow.schemas import ContentSpec, ProductContent

logger = logging.getLogger(__name__)


class RawListingCopy(BaseModel):
    """What the model is asked to return. Loosely typed; bounds are applied afterwards."""

    title: str = ""
    description: str = ""
    tags: list[Any] | str = []
    key_features: list[Any] | str = []
    materials: list[Any] | str = []


COPYWRITER_SYSTEM = (
    "You write marketplace listings for print-on-demand apparel and accessories. "
    "Be specific to the design, avoid trademarked names and never invent certifications."
)


def build_content_prompt(spec: ContentSpec) -> str:
    lines = [
        f"Product type: {spec.product_title}.",
        f"Design idea: {spec.prompt}",
    ]
    if spec.style:
        lines.append(f"Style: {spec.style}.")
    if spec.colors:
        lines.append(f"Colors: {spec.colors}.")
    if spec.audience:
        lines.append(f"Target audience: {spec.audience}.")
    if spec.tone:
        lines.append(f"Tone: {spec.tone}.")
    if spec.brand:
        lines.append(f"Brand: {spec.brand}.")
    lines.append(f"Write in language: {spec.language}.")
    lines.append(
        'Return a JSON object with keys "title" (SEO product title, max '
        f'{TITLE_MAX_CHARS} chars), "description" (2-3 persuasive paragraphs), '
        f'"tags" ({LIST_SIZE} search keywords, each max {TAG_MAX_CHARS} chars), '
        f'"key_features" ({LIST_SIZE} short feature bullets) and '
        f'"materials" ({LIST_SIZE} materials, each max {TAG_MAX_CHARS} chars).'
    )
    return "\n".join(lines)


class LLMContentGenerator:
    def __init__(self, llm: LLMProvider):
        self._llm = llm

    def close(self) -> None:
        close = getattr(self._llm, "close", None)
        if callable(close):
            close()

    def generate_content(self, spec: ContentSpec) -> ProductContent:
        try:
            raw = self._llm.complete_json(build_content_prompt(spec), RawListingCopy, system=COPYWRITER_SYSTEM)
        except (OpenAIAPIError, AnthropicAPIError) as e:
            raise ExternalCallError(f"Content generation failed: {e}", status=getattr(e, "status_code", None)) from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise ExternalCallError(f"Content generator returned invalid JSON: {str(e)[:200]}") from e
        return normalize_content(raw.model_dump(), fallback_title=spec.product_title)
