"""Listing copy normalization to hard marketplace bounds.

Every listing needs exactly 13 tags, 13 key features and 13 materials.
Tags and materials are capped at 20 characters, titles at 140. Generator
output goes through ``normalize_content`` before product creation.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from podflow.schemas import ProductContent

LIST_SIZE = 13
TAG_MAX_CHARS = 20
MATERIAL_MAX_CHARS = 20
TITLE_MAX_CHARS = 140
FEATURE_MAX_CHARS = 200

DEFAULT_TITLE = "Custom Printed Product"

DEFAULT_TAGS = [
    "custom design", "unique gift", "graphic print", "gift for her", "gift for him",
    "original artwork", "trendy style", "birthday gift", "statement piece",
    "holiday gift", "everyday wear", "artistic design", "cute gift",
    "modern design", "print on demand", "fun present", "creative gift",
    "bold graphic", "stylish look", "made to order",
]

DEFAULT_KEY_FEATURES = [
    "Vibrant, long-lasting print",
    "Made to order just for you",
    "Original artwork design",
    "Comfortable everyday use",
    "Great gift idea",
    "High-quality materials",
    "Printed with eco-friendly inks",
    "Colors that stay bright wash after wash",
    "Carefully quality checked",
    "Designed for durability",
    "Available in multiple sizes",
    "Ships from a trusted print partner",
    "Unique design you won't find in stores",
    "Easy care instructions",
    "Perfect for any occasion",
    "Thoughtful present for friends and family",
]

DEFAULT_MATERIALS = [
    "cotton", "polyester", "ink", "fabric", "ceramic", "canvas", "paper",
    "vinyl", "blend", "thread", "cardstock", "print", "dye", "jersey",
    "fleece", "linen",
]

_WS_RE = re.compile(r"\s+")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def _clean(text: Any, limit: int) -> str:
    s = _CONTROL_RE.sub(" ", str(text) if text is not None else "")
    s = _WS_RE.sub(" ", s).strip()
    if len(s) > limit:
        s = s[:limit].rstrip()
    return s


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split(",")
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def bounded_list(values: Any, pool: Iterable[str], limit: int, size: int = LIST_SIZE) -> list[str]:
    """Exactly ``size`` distinct (case-insensitive) entries, each at most ``limit`` chars.

    Excess entries are dropped, missing ones drawn from ``pool`` in order.
    """
    out: list[str] = []
    seen: set[str] = set()
    for candidate in [*_as_list(values), *pool]:
        if len(out) == size:
            break
        item = _clean(candidate, limit)
        key = item.lower()
        if not item or key in seen:
            continue
        seen.add(key)
        out.append(item)
    # Pools hold more than ``size`` distinct entries; this is only reachable with a short custom pool.
    n = 1
    while len(out) < size:
        filler = _clean(f"item {n}", limit)
        if filler.lower() not in seen:
            seen.add(filler.lower())
            out.append(filler)
        n += 1
    return out


def normalize_content(raw: ProductContent | dict[str, Any] | None, fallback_title: str = "") -> ProductContent:
    data = raw.model_dump() if isinstance(raw, ProductContent) else dict(raw or {})
    title = _clean(data.get("title"), TITLE_MAX_CHARS) or _clean(fallback_title, TITLE_MAX_CHARS) or DEFAULT_TITLE
    description = str(data.get("description") or "").strip() or title
    return ProductContent(
        title=title,
        description=description,
        tags=bounded_list(data.get("tags"), DEFAULT_TAGS, TAG_MAX_CHARS),
        key_features=bounded_list(
            data.get("key_features") or data.get("keyFeatures"), DEFAULT_KEY_FEATURES, FEATURE_MAX_CHARS
        ),
        materials=bounded_list(data.get("materials"), DEFAULT_MATERIALS, MATERIAL_MAX_CHARS),
    )
