"""Tests for RSS parsing."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from exceptions import FeedError
from ingest import rss

SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Acme Show</title>
    <link>https://acme.fm</link>
    <description>Weekly talk</description>
    <item>
      <title>Episode 12: Batteries</title>
      <description>&lt;p&gt;All about &lt;b&gt;solid-state&lt;/b&gt; cells.&lt;/p&gt;</description>
      <guid isPermaLink="false">acme-ep-12</guid>
      <link>https://acme.fm/12</link>
      <pubDate>Tue, 07 May 2024 10:00:00 +0200</pubDate>
      <enclosure url="https://cdn.acme.fm/12.mp3" type="audio/mpeg" length="1234"/>
      <itunes:duration>01:02:03</itunes:duration>
    </item>
    <item>
      <title></title>
      <link>https://acme.fm/13</link>
    </item>
  </channel>
</rss>
"""


def test_parse_feed_text():
    feed = rss.parse_feed_text(SAMPLE_FEED)

    assert feed.title == "Acme Show"
    assert feed.link == "https://acme.fm"
    assert len(feed.items) == 2

    first = feed.items[0]
    assert first.title == "Episode 12: Batteries"
    assert first.description == "All about solid-state cells."
    assert first.guid == "acme-ep-12"
    assert first.link == "https://acme.fm/12"
    assert first.publish_date == datetime(2024, 5, 7, 8, 0, tzinfo=timezone.utc)


def test_missing_fields_get_defaults():
    second = rss.parse_feed_text(SAMPLE_FEED).items[1]

    assert second.title == "Untitled Episode"
    assert second.description is None
    assert second.guid == "https://acme.fm/13"
    assert second.publish_date is None


@pytest.mark.parametrize(
    "url, ok",
    [
        ("https://feeds.acme.fm/show.xml", True),
        ("http://localhost:8080/feed", True),
        ("ftp://acme.fm/feed", False),
        ("not a url", False),
        ("https://", False),
    ],
)
def test_validate_feed_url(url, ok):
    assert rss.validate_feed_url(url) is ok


def test_parse_feed_fetches_and_parses():
    resp = MagicMock(status_code=200, text=SAMPLE_FEED)
    with patch.object(rss, "fetch", return_value=resp) as fetch:
        feed = rss.parse_feed("https://acme.fm/feed.xml")

    fetch.assert_called_once_with("https://acme.fm/feed.xml")
    assert feed.title == "Acme Show"


def test_parse_feed_http_error():
    resp = MagicMock(status_code=404, text="")
    with patch.object(rss, "fetch", return_value=resp):
        with pytest.raises(FeedError):
            rss.parse_feed("https://acme.fm/missing.xml")


def test_parse_feed_network_error():
    with patch.object(rss, "fetch", side_effect=ConnectionError("refused")):
        with pytest.raises(FeedError):
            rss.parse_feed("https://acme.fm/feed.xml")


def test_garbage_document_raises():
    with pytest.raises(FeedError):
        rss.parse_feed_text("this is not xml at all <<<")
