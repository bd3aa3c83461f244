"""Request bodies for the REST API (camelCase to match the wire format)."""

from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ingest.rss import validate_feed_url

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_email(value: Optional[str]) -> Optional[str]:
    if value and not _EMAIL_RE.match(value):
        raise ValueError("Invalid email format")
    return value


def _check_feeds(value: Optional[List[str]]) -> Optional[List[str]]:
    for url in value or []:
        if not validate_feed_url(url):
            raise ValueError(f"Invalid RSS URL format: {url}")
    return value


class AnalyzeRequest(BaseModel):
    url: Optional[str] = None
    transcript: Optional[str] = None
    title: Optional[str] = None
    publisherId: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def url_or_transcript(self) -> "AnalyzeRequest":
        if not self.url and not self.transcript:
            raise ValueError("Either 'url' or 'transcript' is required")
        return self


class PublisherCreate(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    company: Optional[str] = None
    rssFeeds: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)

    @field_validator("rssFeeds")
    @classmethod
    def valid_feeds(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _check_feeds(value)


class PublisherUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    company: Optional[str] = None
    rssFeeds: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)

    @field_validator("rssFeeds")
    @classmethod
    def valid_feeds(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _check_feeds(value)


class AdBreakIn(BaseModel):
    id: Optional[str] = None
    startTime: float = Field(ge=0)
    maxDuration: float = Field(ge=0)


class EpisodeUpdate(BaseModel):
    adBreaks: Optional[List[AdBreakIn]] = None


class TargetingFiltersIn(BaseModel):
    iabCategories: Optional[List[str]] = None
    sentiment: Optional[List[str]] = None
    minBrandSafetyScore: Optional[float] = Field(default=None, ge=0, le=10)

    def stored(self) -> dict:
        return self.model_dump(exclude_none=True)


class CampaignCreate(BaseModel):
    name: str = Field(min_length=1)
    budget: float = Field(gt=0)
    publisherId: int
    status: str = "active"
    targetingFilters: Optional[TargetingFiltersIn] = None
    impressions: int = 0
    ctr: float = 0.0


class CampaignUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    budget: Optional[float] = Field(default=None, gt=0)
    status: Optional[str] = None
    targetingFilters: Optional[TargetingFiltersIn] = None
    impressions: Optional[int] = None
    ctr: Optional[float] = None


class IngestRequest(BaseModel):
    publisherId: int = Field(gt=0)
    rssUrl: str
    autoAnalyze: bool = False


class BulkExportRequest(BaseModel):
    episodeIds: List[int] = Field(min_length=1)
    format: Literal["json", "csv", "prebid", "gam"] = "json"

    @field_validator("episodeIds")
    @classmethod
    def positive_ids(cls, value: List[int]) -> List[int]:
        if any(i <= 0 for i in value):
            raise ValueError("Episode ids must be positive")
        return value
