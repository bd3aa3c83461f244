"""Simulated CPM pricing for a campaign's targeting breadth."""

from __future__ import annotations

from storage.models import TargetingFilters

BASE_CPM = 2.0
IAB_CATEGORY_PREMIUM = 0.5
SENTIMENT_PREMIUM = 0.3
BRAND_SAFETY_PIVOT = 7.0
BRAND_SAFETY_PREMIUM_PER_POINT = 0.1
MAX_CPM = 10.0


def simulate_cpm(filters: TargetingFilters | None) -> float:
    """Return the simulated CPM in dollars, always within [BASE_CPM, MAX_CPM].

    Priced on what the campaign asks for, not on matching inventory:
    +0.50 per distinct IAB code, +0.30 if any sentiment is set, and +0.10
    per point the brand-safety floor sits above 7.

    A floor of exactly 0 adds nothing and is skipped like an unset floor;
    the match evaluator still applies it.
    """
    cpm = BASE_CPM
    if filters is None:
        return cpm

    if filters.iab_categories:
        cpm += len(set(filters.iab_categories)) * IAB_CATEGORY_PREMIUM

    if filters.sentiment:
        cpm += SENTIMENT_PREMIUM

    if filters.min_brand_safety_score:
        cpm += max(
            0.0,
            (filters.min_brand_safety_score - BRAND_SAFETY_PIVOT) * BRAND_SAFETY_PREMIUM_PER_POINT,
        )

    return min(cpm, MAX_CPM)
