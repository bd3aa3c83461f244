"""RSS feed parsing – fetch, parse, normalise podcast items."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

import feedparser
from dateutil import parser as dateutil_parser

from exceptions import FeedError
from ingest.http import fetch
from storage.models import FeedItem, ParsedFeed

log = logging.getLogger(__name__)


def validate_feed_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _parse_published(entry: dict[str, Any]) -> datetime | None:
    """Best-effort parse of an RSS entry's publication date (aware, UTC)."""
    for key in ("published", "updated", "created"):
        raw = entry.get(key)
        if raw:
            try:
                parsed = dateutil_parser.parse(raw)
            except (ValueError, OverflowError):
                continue
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    return None


def _strip_html(text: str) -> str:
    if "<" in text:
        text = re.sub(r"<[^>]+>", "", text)
    return text.strip()


def _entry_to_item(entry: dict[str, Any]) -> FeedItem:
    """Convert a feedparser entry to a FeedItem."""
    title = (entry.get("title") or "").strip() or "Untitled Episode"
    link = entry.get("link") or None

    # Best-effort body: summary → first content block
    text = entry.get("summary") or ""
    if not text and entry.get("content"):
        text = entry["content"][0].get("value", "")
    description = _strip_html(text) or None

    return FeedItem(
        title=title,
        description=description,
        guid=entry.get("id") or link,
        link=link,
        publish_date=_parse_published(entry),
    )


def parse_feed_text(text: str) -> ParsedFeed:
    """Parse an already-fetched feed document."""
    feed = feedparser.parse(text)
    if feed.bozo and not feed.entries:
        raise FeedError(f"Failed to parse RSS feed: {feed.get('bozo_exception')}")

    meta = feed.feed
    return ParsedFeed(
        title=meta.get("title") or "Untitled Feed",
        description=meta.get("subtitle") or meta.get("description"),
        link=meta.get("link"),
        items=[_entry_to_item(entry) for entry in feed.entries],
    )


def parse_feed(url: str) -> ParsedFeed:
    """Fetch and parse a podcast RSS feed.  Raises FeedError on any failure."""
    try:
        resp = fetch(url)
    except Exception as exc:
        raise FeedError(f"Failed to fetch RSS feed {url}: {exc}") from exc
    if resp.status_code >= 400:
        raise FeedError(f"Failed to fetch RSS feed {url} (HTTP {resp.status_code})")

    parsed = parse_feed_text(resp.text)
    log.info("RSS %s → %d items (%s)", url, len(parsed.items), parsed.title)
    return parsed
