"""Builders for test data."""

from datetime import datetime, timezone

from storage.models import EnrichedMetadata, EpisodeRecord, FeedItem, ParsedFeed


def make_metadata(**overrides) -> EnrichedMetadata:
    data = dict(
        summary="A chat about electric cars.",
        topics=["EVs", "batteries"],
        entities=["Tesla"],
        tone="conversational",
        sentiment="positive",
        brand_safety_score=9.0,
        iab_categories=["IAB2", "IAB19"],
        contextual_segments=["auto intenders"],
    )
    data.update(overrides)
    return EnrichedMetadata(**data)


def make_episode(episode_id=1, categories=None, sentiment=None, score=None, **kwargs) -> EpisodeRecord:
    metadata = kwargs.pop("metadata", None)
    if metadata is None and categories is not None:
        metadata = {"iab_categories": categories}
    return EpisodeRecord(
        id=episode_id,
        title=kwargs.pop("title", f"Episode {episode_id}"),
        enriched_metadata=metadata,
        sentiment=sentiment,
        brand_safety_score=score,
        **kwargs,
    )


def feed_item(title, guid=None, description="Episode notes", published=None, link=None) -> FeedItem:
    return FeedItem(
        title=title,
        description=description,
        guid=guid,
        link=link,
        publish_date=published,
    )


def make_feed(*items, title="Acme Show") -> ParsedFeed:
    return ParsedFeed(title=title, items=list(items))


def at(day, hour=12) -> datetime:
    return datetime(2024, 5, day, hour, tzinfo=timezone.utc)
