"""Tests for storage helpers."""

from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.engine import Engine

from exceptions import NotFoundError
from factories import make_metadata
from storage import db
from storage.models import AdBreak


def _episode(publisher_id, title, metadata=None, created_at=None):
    with db.get_session() as session:
        row = db.create_episode(
            session,
            title=title,
            publisher_id=publisher_id,
            metadata=metadata,
            created_at=created_at,
        )
        return row.id


def test_default_publisher_is_seeded_once(database):
    first = db.ensure_default_publisher()
    second = db.ensure_default_publisher()

    assert first == second == db.get_default_publisher_id()
    names = [p["name"] for p in db.list_publishers()]
    assert names.count(db.DEFAULT_PUBLISHER_NAME) == 1


def test_publisher_crud(database):
    created = db.create_publisher(name="Acme", email="", company="", rss_feeds=["https://a.fm/rss"])
    assert created["email"] is None
    assert created["company"] is None
    assert created["rssFeeds"] == ["https://a.fm/rss"]

    updated = db.update_publisher(created["id"], {"name": "Acme Audio", "email": "hi@a.fm"})
    assert updated["name"] == "Acme Audio"
    assert updated["email"] == "hi@a.fm"
    assert updated["rssFeeds"] == ["https://a.fm/rss"]

    with pytest.raises(NotFoundError):
        db.update_publisher(9999, {"name": "x"})


def test_publisher_detail_and_counts(publisher_id):
    _episode(publisher_id, "Old", created_at=datetime(2024, 1, 1))
    _episode(publisher_id, "New", created_at=datetime(2024, 6, 1))

    detail = db.get_publisher(publisher_id)
    assert [e["title"] for e in detail["episodes"]] == ["New", "Old"]

    counts = {p["id"]: p["episodeCount"] for p in db.list_publishers()}
    assert counts[publisher_id] == 2


def test_category_index_filters_by_exact_code(publisher_id):
    a = _episode(publisher_id, "Cars", make_metadata(iab_categories=["IAB2", "IAB19"]))
    b = _episode(publisher_id, "Tech", make_metadata(iab_categories=["IAB19-1"]))
    _episode(publisher_id, "Bare")

    episodes, total = db.list_episodes(iab_category="IAB19")
    assert total == 1
    assert [e["id"] for e in episodes] == [a]

    episodes, _ = db.list_episodes(iab_category="IAB19-1")
    assert [e["id"] for e in episodes] == [b]

    assert db.list_iab_categories() == ["IAB19", "IAB19-1", "IAB2"]


def test_re_enrichment_replaces_category_rows(publisher_id):
    episode_id = _episode(publisher_id, "Cars", make_metadata(iab_categories=["IAB2"]))

    db.store_enrichment(episode_id, make_metadata(iab_categories=["IAB2", "IAB3"], sentiment="negative"))

    assert db.list_iab_categories() == ["IAB2", "IAB3"]
    assert db.get_episode(episode_id).sentiment == "negative"


def test_list_episodes_filters_and_paging(publisher_id):
    for day in range(1, 6):
        _episode(
            publisher_id,
            f"Show {day}",
            make_metadata(sentiment="positive" if day % 2 else "neutral"),
            created_at=datetime(2024, 3, day, 8),
        )

    episodes, total = db.list_episodes(limit=2, skip=1)
    assert total == 5
    assert [e["title"] for e in episodes] == ["Show 4", "Show 3"]
    assert episodes[0]["publisher"]["name"] == "Acme Audio"

    _, positive = db.list_episodes(sentiment="positive")
    assert positive == 3

    episodes, _ = db.list_episodes(
        date_from=datetime(2024, 3, 2), date_to=datetime(2024, 3, 3, 23, 59)
    )
    assert sorted(e["title"] for e in episodes) == ["Show 2", "Show 3"]

    _, found = db.list_episodes(search="show 5")
    assert found == 1


def test_ad_breaks_are_replaced_with_default_ids(publisher_id):
    episode_id = _episode(publisher_id, "Ep")
    db.replace_ad_breaks(episode_id, [AdBreak(id="a", start_time=0, max_duration=15)])

    stored = db.replace_ad_breaks(
        episode_id,
        [AdBreak(start_time=30, max_duration=60), AdBreak(id="mid", start_time=900, max_duration=90)],
    )

    assert stored["adBreaks"] == [
        {"id": "break-0", "startTime": 30, "maxDuration": 60},
        {"id": "mid", "startTime": 900, "maxDuration": 90},
    ]


def test_missing_episode(database):
    with pytest.raises(NotFoundError):
        db.get_episode(123)
    with pytest.raises(NotFoundError):
        db.replace_ad_breaks(123, [])


def test_reinit_disposes_previous_engine(database):
    previous = db._engine

    with patch.object(Engine, "dispose", autospec=True) as dispose:
        db.init_db()

    dispose.assert_called_once_with(previous)
    assert db._engine is not previous
