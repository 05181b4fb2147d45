"""Catalog selection policies. Pure functions over catalog data.

Given the catalog lists returned by the capability clients and the job's free
text prompt, pick the blueprint, provider and print area for one item.
Explicit overrides always win when they match something in the list.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from podflow.jobs.errors import StepError
from podflow.schemas import Blueprint, PrintArea, Provider

NO_BLUEPRINT = "no suitable blueprint found"
NO_PROVIDER = "no provider available"
NO_PRINT_AREAS = "no print areas available"

# Position match dominates, pixel area breaks ties between matching areas.
POSITION_WEIGHT = 100_000_000

TYPE_MATCH_SCORE = 5
POPULAR_MODEL_SCORE = 2

# (product type, prompt pattern, blueprint title pattern). Order matters:
# the first prompt pattern that matches decides the type.
_PRODUCT_TYPES: list[tuple[str, re.Pattern, re.Pattern]] = [
    ("hoodie", re.compile(r"hoodie|sweatshirt"), re.compile(r"hoodie|sweatshirt")),
    ("tank", re.compile(r"\btank"), re.compile(r"tank")),
    ("longsleeve", re.compile(r"long[-\s]?sleeve"), re.compile(r"long.*sleeve")),
    ("tshirt", re.compile(r"t[-\s]?shirt|\btee\b|shirt"), re.compile(r"shirt|\btee\b")),
    ("mug", re.compile(r"mug|tumbler"), re.compile(r"mug|tumbler")),
    ("poster", re.compile(r"poster|canvas|\bprint\b"), re.compile(r"poster|canvas|\bprint\b")),
    ("phonecase", re.compile(r"phone\s?case"), re.compile(r"phone.*case")),
    ("sticker", re.compile(r"sticker"), re.compile(r"sticker")),
    ("tote", re.compile(r"tote|\bbag\b"), re.compile(r"tote|\bbag\b")),
    ("pillow", re.compile(r"pillow|cushion"), re.compile(r"pillow|cushion")),
]

_POPULAR_MODELS = re.compile(r"3001|bella|gildan|18500|5000")

# Checked in order; the more specific chest positions come before plain "chest".
_POSITION_KEYWORDS: list[tuple[str, re.Pattern]] = [
    ("back", re.compile(r"\bback\b")),
    ("sleeve", re.compile(r"sleeve")),
    ("left_chest", re.compile(r"left[\s_-]?chest")),
    ("right_chest", re.compile(r"right[\s_-]?chest")),
    ("chest", re.compile(r"chest")),
]


def classify_product_type(prompt_text: str) -> str:
    """Coarse product type from free text, or ``"any"``."""
    p = (prompt_text or "").lower()
    for name, prompt_re, _ in _PRODUCT_TYPES:
        if prompt_re.search(p):
            return name
    return "any"


def blueprint_score(blueprint: Blueprint, product_type: str) -> int:
    title = f"{blueprint.title} {blueprint.brand} {blueprint.model}".lower()
    score = 0
    for name, _, title_re in _PRODUCT_TYPES:
        if name == product_type and title_re.search(title):
            score += TYPE_MATCH_SCORE
    if _POPULAR_MODELS.search(title):
        score += POPULAR_MODEL_SCORE
    return score


def _find_by_id(items: Iterable, item_id: str | None):
    if not item_id:
        return None
    return next((it for it in items if str(it.id) == str(item_id)), None)


def choose_blueprint(
    blueprints: Sequence[Blueprint],
    prompt_text: str,
    override: str | None = None,
) -> Blueprint:
    if not blueprints:
        raise StepError("blueprint", NO_BLUEPRINT)
    hit = _find_by_id(blueprints, override)
    if hit is not None:
        return hit

    product_type = classify_product_type(prompt_text)
    best, best_score = blueprints[0], 0
    for bp in blueprints:
        score = blueprint_score(bp, product_type)
        if score > best_score:  # strict: ties keep the earlier blueprint
            best, best_score = bp, score
    return best


def choose_provider(
    providers: Sequence[Provider],
    preference_hint: str | None = None,
    override: str | None = None,
) -> Provider:
    if not providers:
        raise StepError("provider", NO_PROVIDER)
    hit = _find_by_id(providers, override)
    if hit is not None:
        return hit
    if preference_hint:
        pref = preference_hint.lower()
        for pr in providers:
            if pref in pr.title.lower():
                return pr
    return providers[0]


def preferred_position(prompt_text: str) -> str:
    p = (prompt_text or "").lower()
    for position, keyword_re in _POSITION_KEYWORDS:
        if keyword_re.search(p):
            return position
    return "front"


def choose_print_area(
    print_areas: Sequence[PrintArea],
    prompt_text: str,
    override_positions: Sequence[str] | None = None,
) -> PrintArea:
    if not print_areas:
        raise StepError("print-areas", NO_PRINT_AREAS)

    for wanted in override_positions or ():
        wanted = wanted.lower()
        for pa in print_areas:
            if wanted in pa.position.lower():
                return pa

    pref = preferred_position(prompt_text)
    best, best_score = None, 0
    for pa in print_areas:
        score = (POSITION_WEIGHT if pref in pa.position.lower() else 0) + pa.pixels
        if score > best_score:
            best, best_score = pa, score
    return best if best is not None else print_areas[0]
