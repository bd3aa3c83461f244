"""Manual analysis – enrich submitted text and store it as an episode."""

from __future__ import annotations

import logging
from typing import Callable

from exceptions import ValidationError
from ingest.rss import validate_feed_url
from process.enrich import analyze_episode
from storage.db import create_episode, get_default_publisher_id, get_session, require_publisher
from storage.models import EnrichedMetadata

log = logging.getLogger(__name__)


def analyze_and_store(
    *,
    url: str | None = None,
    transcript: str | None = None,
    title: str | None = None,
    publisher_id: int | None = None,
    analyzer: Callable[..., EnrichedMetadata] | None = None,
) -> dict:
    """Enrich a transcript (or a URL placeholder) and persist the episode.

    Enrichment errors propagate: there is nothing partial to keep.  Without
    *publisher_id* the seeded default publisher owns the episode.
    """
    if not url and not transcript:
        raise ValidationError("Either 'url' or 'transcript' is required")
    if url and url.strip() and not validate_feed_url(url.strip()):
        raise ValidationError("Invalid URL format")

    if publisher_id is None:
        publisher_id = get_default_publisher_id()
    else:
        with get_session() as session:
            require_publisher(session, publisher_id)

    text = transcript or f"Analyze podcast episode at {url}"
    metadata = (analyzer or analyze_episode)(text, title)

    with get_session() as session:
        row = create_episode(
            session,
            title=title or "Untitled Episode",
            publisher_id=publisher_id,
            source_ref=url or None,
            transcript=transcript or None,
            metadata=metadata,
        )
        episode_id, created_at = row.id, row.created_at

    log.info("Analyzed and stored episode %d", episode_id)
    return {"id": episode_id, **metadata.to_dict(), "analyzedAt": created_at.isoformat()}
