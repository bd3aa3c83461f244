"""Targeting match – score enriched episodes against campaign filters.

Pure functions only: no database access, no logging side effects.  The
campaign endpoints fetch episodes, turn them into ``EpisodeRecord`` values
and hand them to :func:`evaluate`.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from storage.models import EpisodeRecord, MatchedEpisode, MatchMetadata, TargetingFilters

# ── Uplift table ─────────────────────────────────────────────────────
IAB_MATCH_UPLIFT = 0.5
SENTIMENT_MATCH_UPLIFT = 0.3
BRAND_SAFETY_PIVOT = 7.0
BRAND_SAFETY_UPLIFT_PER_POINT = 0.1
MAX_CPM_UPLIFT = 8.0


def _episode_categories(metadata: Any) -> list[str]:
    if not isinstance(metadata, Mapping):
        return []
    cats = metadata.get("iab_categories") or []
    if not isinstance(cats, (list, tuple)):
        return []
    return list(cats)


def brand_safety_bonus(score: float) -> float:
    """Dollar bonus for every point above the pivot, zero at or below it."""
    return max(0.0, (score - BRAND_SAFETY_PIVOT) * BRAND_SAFETY_UPLIFT_PER_POINT)


def score_episode(filters: TargetingFilters, episode: EpisodeRecord) -> MatchMetadata | None:
    """Return match metadata if *episode* satisfies every configured criterion."""
    match_score = 0
    cpm_uplift = 0.0

    # 1) IAB category intersection
    if filters.iab_categories:
        episode_cats = _episode_categories(episode.enriched_metadata)
        if not any(cat in episode_cats for cat in filters.iab_categories):
            return None
        match_score += 1
        cpm_uplift += IAB_MATCH_UPLIFT

    # 2) Sentiment membership
    if filters.sentiment:
        if not episode.sentiment or episode.sentiment not in filters.sentiment:
            return None
        match_score += 1
        cpm_uplift += SENTIMENT_MATCH_UPLIFT

    # 3) Brand safety floor (a floor of 0 still counts as configured)
    if filters.min_brand_safety_score is not None:
        score = episode.brand_safety_score or 0
        if score < filters.min_brand_safety_score:
            return None
        match_score += 1
        cpm_uplift += brand_safety_bonus(score)

    return MatchMetadata(
        episode_id=episode.id,
        match_score=match_score,
        cpm_uplift=min(cpm_uplift, MAX_CPM_UPLIFT),
    )


def evaluate(
    filters: TargetingFilters | None,
    episodes: Sequence[EpisodeRecord],
) -> list[MatchedEpisode]:
    """Return the episodes matching *filters*, in input order.

    ``None`` filters target all inventory: every episode matches with a
    score and uplift of zero.
    """
    if filters is None:
        return [
            MatchedEpisode(episode=ep, match=MatchMetadata(ep.id, 0, 0.0))
            for ep in episodes
        ]

    matched: list[MatchedEpisode] = []
    for ep in episodes:
        meta = score_episode(filters, ep)
        if meta is not None:
            matched.append(MatchedEpisode(episode=ep, match=meta))
    return matched


def match_campaign(
    stored_filters: dict[str, Any] | None,
    episodes: Sequence[EpisodeRecord],
) -> list[MatchedEpisode]:
    """Evaluate filters in their stored (camelCase JSON) form."""
    return evaluate(TargetingFilters.from_dict(stored_filters), episodes)
