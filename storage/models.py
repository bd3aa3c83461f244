"""SQLAlchemy models and shared data classes for podsignal."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


# ── ORM base ────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


class PublisherRow(Base):
    """A podcast publisher owning zero or more episodes."""

    __tablename__ = "publishers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False)
    email = Column(String(256), nullable=True)
    company = Column(String(256), nullable=True)
    rss_feeds = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    episodes = relationship("EpisodeRow", back_populates="publisher")
    campaigns = relationship("CampaignRow", back_populates="publisher")

    def __repr__(self) -> str:
        return f"<PublisherRow id={self.id} name={self.name!r:.40}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "company": self.company,
            "rssFeeds": list(self.rss_feeds or []),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class EpisodeRow(Base):
    """Persisted episode (manual analysis or feed ingestion)."""

    __tablename__ = "episodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    source_ref = Column(String(2048), nullable=True)  # RSS GUID / link / page URL
    transcript = Column(Text, nullable=True)
    enriched_metadata = Column(JSON, nullable=True)
    brand_safety_score = Column(Float, nullable=True)
    sentiment = Column(String(32), nullable=True)
    contextual_score = Column(Float, nullable=True)  # reserved, always null today
    ad_breaks = Column(JSON, nullable=True)
    publisher_id = Column(Integer, ForeignKey("publishers.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    publisher = relationship("PublisherRow", back_populates="episodes")
    categories = relationship(
        "EpisodeCategoryRow",
        back_populates="episode",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_episodes_publisher_source_ref", "publisher_id", "source_ref"),
        Index("ix_episodes_publisher_title", "publisher_id", "title"),
    )

    def __repr__(self) -> str:
        return f"<EpisodeRow id={self.id} title={self.title!r:.40}>"

    def to_record(self) -> EpisodeRecord:
        return EpisodeRecord(
            id=self.id,
            title=self.title,
            source_ref=self.source_ref,
            transcript=self.transcript,
            enriched_metadata=self.enriched_metadata,
            brand_safety_score=self.brand_safety_score,
            sentiment=self.sentiment,
            contextual_score=self.contextual_score,
            ad_breaks=[AdBreak.from_dict(b) for b in self.ad_breaks or []],
            publisher_id=self.publisher_id,
            created_at=self.created_at,
        )

    def to_dict(self, include_publisher: bool = False) -> dict:
        data = self.to_record().to_dict()
        if include_publisher and self.publisher is not None:
            data["publisher"] = {
                "id": self.publisher.id,
                "name": self.publisher.name,
                "email": self.publisher.email,
            }
        return data


class EpisodeCategoryRow(Base):
    """Materialised (episode, IAB code) pairs for indexed category lookups."""

    __tablename__ = "episode_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    episode_id = Column(Integer, ForeignKey("episodes.id"), nullable=False)
    code = Column(String(64), nullable=False, index=True)

    episode = relationship("EpisodeRow", back_populates="categories")


class CampaignRow(Base):
    """Advertiser campaign with optional targeting filters."""

    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False)
    budget = Column(Float, nullable=False)
    status = Column(String(32), nullable=False, default="active")
    publisher_id = Column(Integer, ForeignKey("publishers.id"), nullable=False)
    targeting_filters = Column(JSON, nullable=True)  # camelCase keys
    simulated_cpm = Column(Float, nullable=True)
    impressions = Column(Integer, nullable=False, default=0)
    ctr = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    publisher = relationship("PublisherRow", back_populates="campaigns")

    def __repr__(self) -> str:
        return f"<CampaignRow id={self.id} name={self.name!r:.40}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "budget": self.budget,
            "status": self.status,
            "publisherId": self.publisher_id,
            "targetingFilters": self.targeting_filters,
            "simulatedCpm": self.simulated_cpm,
            "impressions": self.impressions,
            "ctr": self.ctr,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if self.publisher is not None:
            data["publisher"] = {
                "id": self.publisher.id,
                "name": self.publisher.name,
                "email": self.publisher.email,
                "company": self.publisher.company,
            }
        return data


# ── Plain data classes used by the engines and formatters ────────────
@dataclass
class EnrichedMetadata:
    summary: str = ""
    topics: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)
    tone: str = "neutral"
    sentiment: str = "neutral"
    brand_safety_score: float = 0.0
    iab_categories: list[str] = field(default_factory=list)
    contextual_segments: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "topics": list(self.topics),
            "entities": list(self.entities),
            "tone": self.tone,
            "sentiment": self.sentiment,
            "brand_safety_score": self.brand_safety_score,
            "iab_categories": list(self.iab_categories),
            "contextual_segments": list(self.contextual_segments),
        }


@dataclass
class AdBreak:
    """One mid-roll slot.  Fields stay None when the stored break lacks them."""

    id: Optional[str] = None
    start_time: Optional[float] = None
    max_duration: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdBreak:
        return cls(
            id=data.get("id"),
            start_time=data.get("startTime"),
            max_duration=data.get("maxDuration"),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "startTime": self.start_time, "maxDuration": self.max_duration}


@dataclass
class TargetingFilters:
    """Campaign targeting rules.  ``None`` on any field means no constraint."""

    iab_categories: Optional[list[str]] = None
    sentiment: Optional[list[str]] = None
    min_brand_safety_score: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TargetingFilters | None:
        if data is None:
            return None
        return cls(
            iab_categories=data.get("iabCategories"),
            sentiment=data.get("sentiment"),
            min_brand_safety_score=data.get("minBrandSafetyScore"),
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        if self.iab_categories is not None:
            data["iabCategories"] = list(self.iab_categories)
        if self.sentiment is not None:
            data["sentiment"] = list(self.sentiment)
        if self.min_brand_safety_score is not None:
            data["minBrandSafetyScore"] = self.min_brand_safety_score
        return data


@dataclass
class EpisodeRecord:
    id: int
    title: str
    source_ref: Optional[str] = None
    transcript: Optional[str] = None
    enriched_metadata: Optional[dict] = None
    brand_safety_score: Optional[float] = None
    sentiment: Optional[str] = None
    contextual_score: Optional[float] = None
    ad_breaks: list[AdBreak] = field(default_factory=list)
    publisher_id: Optional[int] = None
    created_at: Optional[dt.datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "rssUrl": self.source_ref,
            "transcript": self.transcript,
            "enrichedMetadata": self.enriched_metadata,
            "brandSafetyScore": self.brand_safety_score,
            "sentiment": self.sentiment,
            "contextualScore": self.contextual_score,
            "adBreaks": [b.to_dict() for b in self.ad_breaks],
            "publisherId": self.publisher_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class MatchMetadata:
    episode_id: int
    match_score: int
    cpm_uplift: float

    def to_dict(self) -> dict:
        return {
            "episodeId": self.episode_id,
            "matchScore": self.match_score,
            "cpmUplift": self.cpm_uplift,
        }


@dataclass
class MatchedEpisode:
    episode: EpisodeRecord
    match: MatchMetadata


@dataclass
class FeedItem:
    title: str
    description: Optional[str] = None
    guid: Optional[str] = None
    link: Optional[str] = None
    publish_date: Optional[dt.datetime] = None


@dataclass
class ParsedFeed:
    title: str
    description: Optional[str] = None
    link: Optional[str] = None
    items: list[FeedItem] = field(default_factory=list)
