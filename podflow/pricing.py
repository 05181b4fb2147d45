"""Variant retail pricing from provider cost and a markup percentage."""

from __future__ import annotations

import math
from typing import Any

DEFAULT_MARKUP = 40.0
FALLBACK_PRICE_CENTS = 2000  # used when the provider reports no cost


def price_cents(cost_cents: Any, markup: float = DEFAULT_MARKUP) -> int:
    """Retail price in cents: cost plus ``markup`` percent, never below cost + 1 cent."""
    try:
        base = float(cost_cents)
    except (TypeError, ValueError):
        return FALLBACK_PRICE_CENTS
    if not math.isfinite(base) or base <= 0:
        return FALLBACK_PRICE_CENTS
    price = round(base * (1 + markup / 100))
    return int(max(price, base + 1))
