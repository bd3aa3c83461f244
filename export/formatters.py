"""Export formatters – ad-server key-values, bid-request extension, bulk files.

All formatters are total: missing metadata simply yields fewer keys.
"""

from __future__ import annotations

import copy
import csv
import io
from typing import Any, Mapping, Sequence

from storage.models import EpisodeRecord

NAMESPACE = "podsignal"
KV_MAX_LENGTH = 500
DEFAULT_BREAK_DURATION = 30

BULK_FORMATS = ("json", "csv", "prebid", "gam")

CSV_HEADERS = [
    "Episode ID",
    "Title",
    "Publisher",
    "IAB Categories",
    "Sentiment",
    "Brand Safety Score",
    "Contextual Segments",
    "Topics",
    "Entities",
    "Ad Breaks",
]


def _metadata_list(episode: EpisodeRecord, key: str) -> list[str] | None:
    metadata = episode.enriched_metadata
    if not isinstance(metadata, Mapping):
        return None
    value = metadata.get(key)
    return list(value) if isinstance(value, list) else None


def _truncate(value: str, limit: int = KV_MAX_LENGTH) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def _fmt_number(value: Any) -> str:
    """Render 9.0 as "9" and 8.5 as "8.5"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ── Ad-server key-values ─────────────────────────────────────────────


def format_gam_kvs(episode: EpisodeRecord) -> dict[str, str]:
    kvs: dict[str, str] = {}

    cats = _metadata_list(episode, "iab_categories")
    if cats is not None:
        kvs[f"{NAMESPACE}_iab_cat"] = ",".join(cats)

    if episode.sentiment:
        kvs[f"{NAMESPACE}_sentiment"] = episode.sentiment

    if episode.brand_safety_score is not None:
        kvs[f"{NAMESPACE}_brand_safety"] = _fmt_number(episode.brand_safety_score)

    segments = _metadata_list(episode, "contextual_segments")
    if segments is not None:
        kvs[f"{NAMESPACE}_segments"] = ",".join(segments)

    topics = _metadata_list(episode, "topics")
    if topics is not None:
        kvs[f"{NAMESPACE}_topics"] = _truncate(",".join(topics))

    entities = _metadata_list(episode, "entities")
    if entities is not None:
        kvs[f"{NAMESPACE}_entities"] = _truncate(",".join(entities))

    for index, brk in enumerate(episode.ad_breaks):
        if brk.start_time is not None:
            kvs[f"ad_{index}_start"] = _fmt_number(brk.start_time)
        if brk.max_duration is not None:
            kvs[f"ad_{index}_maxdur"] = _fmt_number(brk.max_duration)
        if brk.id:
            kvs[f"ad_{index}_id"] = str(brk.id)

    return kvs


def format_gam_manual_entry(episode: EpisodeRecord) -> str:
    """``key = value`` lines for pasting into the ad server UI."""
    return "\n".join(f"{k} = {v}" for k, v in format_gam_kvs(episode).items())


# ── Bid-request extension ────────────────────────────────────────────


def format_prebid_ext(episode: EpisodeRecord) -> dict[str, Any]:
    ns: dict[str, Any] = {}

    cats = _metadata_list(episode, "iab_categories")
    if cats is not None:
        ns["iab_categories"] = cats
    if episode.sentiment:
        ns["sentiment"] = episode.sentiment
    if episode.brand_safety_score is not None:
        ns["brand_safety_score"] = episode.brand_safety_score
    for key in ("contextual_segments", "topics", "entities"):
        values = _metadata_list(episode, key)
        if values is not None:
            ns[key] = values

    if episode.ad_breaks:
        breaks = []
        for brk in episode.ad_breaks:
            start = brk.start_time if isinstance(brk.start_time, (int, float)) else 0
            duration = (
                brk.max_duration
                if isinstance(brk.max_duration, (int, float))
                else DEFAULT_BREAK_DURATION
            )
            breaks.append(
                {
                    "id": brk.id or f"break-{_fmt_number(brk.start_time)}",
                    "startTime": start,
                    "maxDuration": duration,
                }
            )
        ns["adBreaks"] = breaks

    return {"ext": {NAMESPACE: ns}}


def extract_episode_id(
    bid_request: Mapping[str, Any],
    query_params: Mapping[str, str] | None = None,
) -> int | None:
    """Episode id from ``ext.<ns>.episodeId`` or an ``episodeId`` query param."""
    ext = bid_request.get("ext")
    if isinstance(ext, Mapping):
        ns = ext.get(NAMESPACE)
        if isinstance(ns, Mapping) and ns.get("episodeId"):
            try:
                return int(str(ns["episodeId"]))
            except ValueError:
                pass
    if query_params:
        raw = query_params.get("episodeId")
        if raw:
            try:
                return int(raw)
            except ValueError:
                pass
    return None


def inject_bid_metadata(bid_request: Mapping[str, Any], episode: EpisodeRecord) -> dict[str, Any]:
    """Return a copy of *bid_request* with episode metadata under ext and every imp.ext."""
    ns = format_prebid_ext(episode)["ext"][NAMESPACE]
    enhanced = copy.deepcopy(dict(bid_request))

    ext = enhanced.get("ext")
    if not isinstance(ext, dict):
        ext = enhanced["ext"] = {}
    ext[NAMESPACE] = ns

    imps = enhanced.get("imp")
    if isinstance(imps, list):
        for imp in imps:
            if not isinstance(imp, dict):
                continue
            if not isinstance(imp.get("ext"), dict):
                imp["ext"] = {}
            imp["ext"][NAMESPACE] = copy.deepcopy(ns)
    return enhanced


# ── Bulk export ──────────────────────────────────────────────────────


def _joined(values: list[str] | None) -> str:
    return "; ".join(values or [])


def format_csv(episodes: Sequence[EpisodeRecord], publishers: Mapping[int, str]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for ep in episodes:
        breaks = "; ".join(
            f"{b.id or 'break'}:{_fmt_number(b.start_time)}s/{_fmt_number(b.max_duration)}s"
            for b in ep.ad_breaks
        )
        writer.writerow(
            [
                str(ep.id),
                ep.title or "",
                publishers.get(ep.publisher_id, ""),
                _joined(_metadata_list(ep, "iab_categories")),
                ep.sentiment or "",
                _fmt_number(ep.brand_safety_score) if ep.brand_safety_score is not None else "",
                _joined(_metadata_list(ep, "contextual_segments")),
                _joined(_metadata_list(ep, "topics")),
                _joined(_metadata_list(ep, "entities")),
                breaks,
            ]
        )
    return buf.getvalue().rstrip("\n")


def format_bulk(
    episodes: Sequence[EpisodeRecord],
    fmt: str,
    publishers: Mapping[int, str] | None = None,
) -> list[dict[str, Any]] | str:
    """Bulk export in one of BULK_FORMATS.  CSV returns text, the rest JSON-able lists."""
    publishers = publishers or {}
    if fmt == "csv":
        return format_csv(episodes, publishers)
    if fmt == "prebid":
        return [
            {"episodeId": ep.id, "episodeTitle": ep.title, **format_prebid_ext(ep)}
            for ep in episodes
        ]
    if fmt == "gam":
        return [
            {"episodeId": ep.id, "episodeTitle": ep.title, **format_gam_kvs(ep)}
            for ep in episodes
        ]

    result = []
    for ep in episodes:
        data = ep.to_dict()
        data["publisher"] = {"id": ep.publisher_id, "name": publishers.get(ep.publisher_id)}
        data["prebidExt"] = format_prebid_ext(ep)
        data["gamKVs"] = format_gam_kvs(ep)
        result.append(data)
    return result
