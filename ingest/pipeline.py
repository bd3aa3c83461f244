"""Feed ingestion – turn a publisher's RSS feed into episode rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from exceptions import ValidationError
from ingest.rss import parse_feed, validate_feed_url
from process.dedupe import find_duplicate, source_key
from process.enrich import analyze_episode
from storage.db import (
    create_episode,
    get_session,
    list_publisher_feeds,
    require_publisher,
    store_enrichment,
)
from storage.models import EnrichedMetadata, ParsedFeed, to_naive_utc

log = logging.getLogger(__name__)

SKIP_REASON_EXISTS = "Episode already exists"

FeedParser = Callable[[str], ParsedFeed]
Analyzer = Callable[..., EnrichedMetadata]


@dataclass
class IngestResult:
    feed_title: str
    created_episodes: list[dict] = field(default_factory=list)  # {"id", "title"}
    skipped_episodes: list[dict] = field(default_factory=list)  # {"title", "reason"}
    enrichment_failures: int = 0

    @property
    def created(self) -> int:
        return len(self.created_episodes)

    @property
    def skipped(self) -> int:
        return len(self.skipped_episodes)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "feedTitle": self.feed_title,
            "created": self.created,
            "skipped": self.skipped,
            "createdEpisodes": self.created_episodes,
            "skippedEpisodes": self.skipped_episodes,
            "enrichmentFailures": self.enrichment_failures,
        }


def ingest_feed(
    publisher_id: int,
    feed_url: str,
    auto_analyze: bool = False,
    *,
    parser: FeedParser | None = None,
    analyzer: Analyzer | None = None,
) -> IngestResult:
    """Ingest one feed for *publisher_id*.

    Items are handled one at a time and each new episode is committed before
    the next item's duplicate check, so near-duplicates within one feed are
    caught.  An enrichment failure leaves that episode un-enriched and moves
    on; a feed that cannot be fetched raises FeedError before anything is
    written.
    """
    if not validate_feed_url(feed_url):
        raise ValidationError("Invalid RSS URL format")
    parser = parser or parse_feed
    analyzer = analyzer or analyze_episode

    with get_session() as session:
        require_publisher(session, publisher_id)

    feed = parser(feed_url)
    result = IngestResult(feed_title=feed.title)
    total = len(feed.items)

    for idx, item in enumerate(feed.items, 1):
        with get_session() as session:
            if find_duplicate(session, publisher_id, item, feed_url) is not None:
                result.skipped_episodes.append({"title": item.title, "reason": SKIP_REASON_EXISTS})
                log.debug("Skipping [%d/%d] %r: already exists", idx, total, item.title)
                continue

            row = create_episode(
                session,
                title=item.title,
                publisher_id=publisher_id,
                source_ref=source_key(item) or feed_url,
                transcript=item.description or None,
                created_at=to_naive_utc(item.publish_date) if item.publish_date else None,
            )
            episode_id = row.id

        result.created_episodes.append({"id": episode_id, "title": item.title})
        log.info("Created [%d/%d] episode %d: %s", idx, total, episode_id, item.title[:80])

        if auto_analyze and item.description:
            try:
                metadata = analyzer(item.description, item.title)
                store_enrichment(episode_id, metadata)
            except Exception:
                result.enrichment_failures += 1
                log.exception("Failed to analyze episode %d – continuing", episode_id)

    log.info(
        "Feed %s: %d created, %d skipped, %d enrichment failures",
        feed_url,
        result.created,
        result.skipped,
        result.enrichment_failures,
    )
    return result


def ingest_configured_feeds(
    feeds: list[dict[str, Any]],
    *,
    include_publisher_feeds: bool = True,
    auto_analyze: bool = False,
    parser: FeedParser | None = None,
    analyzer: Analyzer | None = None,
) -> list[IngestResult]:
    """Ingest every configured feed.  *feeds* is a list of {publisher_id, url} dicts.

    Feeds stored on publishers are added when *include_publisher_feeds* is set.
    A failing feed is logged and skipped.
    """
    jobs: list[tuple[int, str, bool]] = [
        (int(cfg["publisher_id"]), cfg["url"], bool(cfg.get("auto_analyze", auto_analyze)))
        for cfg in feeds
    ]
    if include_publisher_feeds:
        seen = {(pid, url) for pid, url, _ in jobs}
        for pid, url in list_publisher_feeds():
            if (pid, url) not in seen:
                jobs.append((pid, url, auto_analyze))

    results: list[IngestResult] = []
    for pid, url, analyze in jobs:
        try:
            results.append(ingest_feed(pid, url, analyze, parser=parser, analyzer=analyzer))
        except Exception:
            log.exception("Unhandled error for feed %s (publisher %d) – skipping", url, pid)
    return results
