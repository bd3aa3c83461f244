"""Campaign persistence with derived simulated CPM and episode matching."""

from __future__ import annotations

import logging
from typing import Any

from exceptions import NotFoundError
from process.pricing import simulate_cpm
from process.targeting import match_campaign
from storage.db import get_session, list_episode_records, publisher_names, require_publisher
from storage.models import CampaignRow, TargetingFilters

log = logging.getLogger(__name__)


def _require_campaign(session, campaign_id: int) -> CampaignRow:
    row = session.get(CampaignRow, campaign_id)
    if row is None:
        raise NotFoundError("Campaign not found")
    return row


def create_campaign(
    *,
    name: str,
    budget: float,
    publisher_id: int,
    status: str = "active",
    targeting_filters: dict[str, Any] | None = None,
    impressions: int = 0,
    ctr: float = 0.0,
) -> dict:
    with get_session() as session:
        require_publisher(session, publisher_id)
        row = CampaignRow(
            name=name,
            budget=budget,
            publisher_id=publisher_id,
            status=status,
            targeting_filters=targeting_filters,
            simulated_cpm=simulate_cpm(TargetingFilters.from_dict(targeting_filters)),
            impressions=impressions,
            ctr=ctr,
        )
        session.add(row)
        session.flush()
        log.info("Created campaign id=%d simulated_cpm=%.2f", row.id, row.simulated_cpm)
        return row.to_dict()


def update_campaign(campaign_id: int, changes: dict[str, Any]) -> dict:
    """Apply a partial update.

    Any change carrying ``targeting_filters`` or ``budget`` recomputes the
    simulated CPM, even though budget does not enter the price yet.
    """
    with get_session() as session:
        row = _require_campaign(session, campaign_id)
        for key in ("name", "budget", "status", "impressions", "ctr"):
            if key in changes:
                setattr(row, key, changes[key])

        if "targeting_filters" in changes or "budget" in changes:
            if "targeting_filters" in changes:
                row.targeting_filters = changes["targeting_filters"]
            row.simulated_cpm = simulate_cpm(TargetingFilters.from_dict(row.targeting_filters))
            log.info("Campaign %d: simulated_cpm → %.2f", row.id, row.simulated_cpm)

        session.flush()
        return row.to_dict()


def list_campaigns(publisher_id: int | None = None) -> list[dict]:
    with get_session() as session:
        query = session.query(CampaignRow)
        if publisher_id is not None:
            query = query.filter(CampaignRow.publisher_id == publisher_id)
        rows = query.order_by(CampaignRow.created_at.desc(), CampaignRow.id.desc()).all()
        return [row.to_dict() for row in rows]


def get_campaign(campaign_id: int) -> dict:
    """Campaign detail plus every matching episode with its match metadata."""
    with get_session() as session:
        data = _require_campaign(session, campaign_id).to_dict()

    episodes = list_episode_records()
    matches = match_campaign(data["targetingFilters"], episodes)
    names = publisher_names(m.episode.publisher_id for m in matches)

    matching = []
    for m in matches:
        ep = m.episode.to_dict()
        ep["publisher"] = {"id": m.episode.publisher_id, "name": names.get(m.episode.publisher_id)}
        ep["matchMetadata"] = m.match.to_dict()
        matching.append(ep)

    data["matchingEpisodes"] = matching
    data["matchCount"] = len(matching)
    return data
