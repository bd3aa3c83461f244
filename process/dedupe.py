"""Deduplication – by feed GUID/link and by title within a publish-date window."""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from storage.models import EpisodeRow, FeedItem, to_naive_utc

log = logging.getLogger(__name__)

DUPLICATE_WINDOW = timedelta(hours=24)


def source_key(item: FeedItem) -> str | None:
    """GUID, else link – the identity an RSS item carries across fetches."""
    return item.guid or item.link or None


def find_duplicate(
    session: Session,
    publisher_id: int,
    item: FeedItem,
    feed_url: str | None = None,
) -> EpisodeRow | None:
    """Return an existing episode of *publisher_id* that *item* duplicates.

    An item is a duplicate when either
      (a) an episode's source reference equals the item's GUID-or-link
          (for an item with neither, an episode from *feed_url* with the
          same title), or
      (b) the item has a publish date and an episode with the same title was
          created within ±24h of it.
    """
    conditions = []
    key = source_key(item)
    if key:
        conditions.append(EpisodeRow.source_ref == key)
    elif feed_url:
        conditions.append(and_(EpisodeRow.source_ref == feed_url, EpisodeRow.title == item.title))
    if item.publish_date is not None:
        published = to_naive_utc(item.publish_date)
        conditions.append(
            and_(
                EpisodeRow.title == item.title,
                EpisodeRow.created_at >= published - DUPLICATE_WINDOW,
                EpisodeRow.created_at <= published + DUPLICATE_WINDOW,
            )
        )
    if not conditions:
        return None

    existing = (
        session.query(EpisodeRow)
        .filter(EpisodeRow.publisher_id == publisher_id, or_(*conditions))
        .first()
    )
    if existing is not None:
        log.debug("Dedup: %r matches episode %d", item.title, existing.id)
    return existing
