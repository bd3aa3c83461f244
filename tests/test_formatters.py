"""Tests for export formatters."""

import csv
import io

from export.formatters import (
    NAMESPACE,
    extract_episode_id,
    format_bulk,
    format_gam_kvs,
    format_gam_manual_entry,
    format_prebid_ext,
    inject_bid_metadata,
)
from factories import make_episode, make_metadata
from storage.models import AdBreak


def _enriched(**kwargs):
    return make_episode(
        42,
        metadata=make_metadata(**kwargs).to_dict(),
        sentiment="positive",
        score=9.0,
        ad_breaks=[
            AdBreak(id="pre", start_time=0, max_duration=30),
            AdBreak(id=None, start_time=600.5, max_duration=None),
        ],
        publisher_id=3,
    )


def test_gam_kvs():
    kvs = format_gam_kvs(_enriched())

    assert kvs == {
        f"{NAMESPACE}_iab_cat": "IAB2,IAB19",
        f"{NAMESPACE}_sentiment": "positive",
        f"{NAMESPACE}_brand_safety": "9",
        f"{NAMESPACE}_segments": "auto intenders",
        f"{NAMESPACE}_topics": "EVs,batteries",
        f"{NAMESPACE}_entities": "Tesla",
        "ad_0_start": "0",
        "ad_0_maxdur": "30",
        "ad_0_id": "pre",
        "ad_1_start": "600.5",
    }


def test_gam_truncates_long_lists():
    topics = ["topic-%03d" % i for i in range(100)]
    kvs = format_gam_kvs(_enriched(topics=topics))

    value = kvs[f"{NAMESPACE}_topics"]
    assert len(value) == 500
    assert value.endswith("...")
    assert value[:497] == ",".join(topics)[:497]


def test_gam_for_unenriched_episode_is_empty():
    assert format_gam_kvs(make_episode(1)) == {}
    assert format_gam_manual_entry(make_episode(1)) == ""


def test_gam_manual_entry_lines():
    text = format_gam_manual_entry(_enriched())
    assert f"{NAMESPACE}_sentiment = positive" in text.splitlines()


def test_prebid_ext():
    ext = format_prebid_ext(_enriched())
    ns = ext["ext"][NAMESPACE]

    assert ns["iab_categories"] == ["IAB2", "IAB19"]
    assert ns["brand_safety_score"] == 9.0
    assert ns["topics"] == ["EVs", "batteries"]
    assert ns["adBreaks"] == [
        {"id": "pre", "startTime": 0, "maxDuration": 30},
        {"id": "break-600.5", "startTime": 600.5, "maxDuration": 30},
    ]


def test_prebid_ext_for_unenriched_episode():
    assert format_prebid_ext(make_episode(1)) == {"ext": {NAMESPACE: {}}}


def test_extract_episode_id():
    assert extract_episode_id({"ext": {NAMESPACE: {"episodeId": "17"}}}) == 17
    assert extract_episode_id({}, {"episodeId": "5"}) == 5
    assert extract_episode_id({"ext": {NAMESPACE: {"episodeId": "x"}}}, {"episodeId": "y"}) is None
    assert extract_episode_id({}) is None


def test_inject_bid_metadata_does_not_mutate_input():
    request = {"id": "req-1", "imp": [{"id": "1"}, {"id": "2", "ext": {"other": True}}]}

    enhanced = inject_bid_metadata(request, _enriched())

    assert "ext" not in request
    assert "ext" not in request["imp"][0]
    assert enhanced["ext"][NAMESPACE]["sentiment"] == "positive"
    assert enhanced["imp"][1]["ext"]["other"] is True
    assert enhanced["imp"][0]["ext"][NAMESPACE]["iab_categories"] == ["IAB2", "IAB19"]


def test_bulk_csv():
    text = format_bulk([_enriched()], "csv", {3: 'Acme "Audio"'})
    rows = list(csv.reader(io.StringIO(text)))

    assert rows[0][0] == "Episode ID"
    assert rows[1][0] == "42"
    assert rows[1][2] == 'Acme "Audio"'
    assert rows[1][3] == "IAB2; IAB19"
    assert rows[1][9].startswith("pre:0s/30s")
    assert text.splitlines()[1].startswith('"42",')


def test_bulk_json_and_wire_formats():
    episode = _enriched()

    [as_json] = format_bulk([episode], "json", {3: "Acme"})
    assert as_json["publisher"] == {"id": 3, "name": "Acme"}
    assert as_json["gamKVs"] == format_gam_kvs(episode)
    assert as_json["prebidExt"] == format_prebid_ext(episode)

    [gam] = format_bulk([episode], "gam")
    assert gam["episodeId"] == 42
    assert gam[f"{NAMESPACE}_sentiment"] == "positive"

    [prebid] = format_bulk([episode], "prebid")
    assert prebid["episodeTitle"] == "Episode 42"
    assert NAMESPACE in prebid["ext"]
