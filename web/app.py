"""FastAPI web server – REST API for analysis, ingestion, campaigns and exports.

Run:
    python -m web.app                 # or
    uvicorn web.app:app --reload
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, time as dt_time
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, Query, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from exceptions import (
    EnrichmentError,
    FeedError,
    NotFoundError,
    PodsignalError,
    ValidationError,
)
from export.formatters import (
    extract_episode_id,
    format_bulk,
    format_gam_kvs,
    format_gam_manual_entry,
    format_prebid_ext,
    inject_bid_metadata,
)
from ingest.http import post_json
from ingest.pipeline import ingest_feed
from process.analyze import analyze_and_store
from process import campaigns
from storage import db
from storage.models import AdBreak
from web.schemas import (
    AnalyzeRequest,
    BulkExportRequest,
    CampaignCreate,
    CampaignUpdate,
    EpisodeUpdate,
    IngestRequest,
    PublisherCreate,
    PublisherUpdate,
)

# ── Paths ────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(PROJECT_ROOT / ".env")

log = logging.getLogger(__name__)

PREBID_SERVER_URL = os.getenv("PREBID_SERVER_URL", "http://localhost:8000/openrtb2/auction")


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.init_db(seed=True)
    yield


# ── App ──────────────────────────────────────────────────────────────
app = FastAPI(title="podsignal", version="1.0.0", lifespan=lifespan)


# ── Error mapping ────────────────────────────────────────────────────

_STATUS_BY_ERROR = {
    ValidationError: 400,
    NotFoundError: 404,
    EnrichmentError: 502,
    FeedError: 502,
}


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors and all(err.get("loc", ("",))[0] == "path" for err in errors):
        return await request_validation_exception_handler(request, exc)
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in errors
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request data", "details": details})


@app.exception_handler(PodsignalError)
async def _domain_error(request: Request, exc: PodsignalError):
    status = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500
    )
    if status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": str(exc)})


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)},
    )


# ── API: manual analysis ─────────────────────────────────────────────


@app.post("/api/analyze")
def analyze(body: AnalyzeRequest):
    """Enrich a transcript or URL and store it as an episode."""
    return analyze_and_store(
        url=body.url,
        transcript=body.transcript,
        title=body.title,
        publisher_id=body.publisherId,
    )


# ── API: publishers ──────────────────────────────────────────────────


@app.get("/api/publishers")
def list_publishers():
    publishers = db.list_publishers()
    return {"publishers": publishers, "count": len(publishers)}


@app.post("/api/publishers", status_code=201)
def create_publisher(body: PublisherCreate):
    return db.create_publisher(
        name=body.name,
        email=body.email,
        company=body.company,
        rss_feeds=body.rssFeeds,
    )


@app.get("/api/publishers/{publisher_id}")
def get_publisher(publisher_id: int):
    return db.get_publisher(publisher_id)


@app.put("/api/publishers/{publisher_id}")
def update_publisher(publisher_id: int, body: PublisherUpdate):
    provided = body.model_dump(exclude_unset=True)
    changes = {
        {"rssFeeds": "rss_feeds"}.get(key, key): value for key, value in provided.items()
    }
    return db.update_publisher(publisher_id, changes)


# ── API: episodes ────────────────────────────────────────────────────


@app.get("/api/episodes")
def list_episodes(
    limit: Optional[int] = Query(default=None, ge=0),
    skip: Optional[int] = Query(default=None, ge=0),
    publisherId: Optional[int] = None,
    sentiment: Optional[str] = None,
    iabCategory: Optional[str] = None,
    dateFrom: Optional[date] = None,
    dateTo: Optional[date] = None,
    search: Optional[str] = None,
):
    episodes, total = db.list_episodes(
        limit=limit,
        skip=skip,
        publisher_id=publisherId,
        sentiment=sentiment,
        iab_category=iabCategory,
        date_from=datetime.combine(dateFrom, dt_time.min) if dateFrom else None,
        date_to=datetime.combine(dateTo, dt_time.max) if dateTo else None,
        search=search,
    )
    return {"episodes": episodes, "count": len(episodes), "totalCount": total}


@app.get("/api/episodes/categories")
def list_categories():
    return {"iabCategories": db.list_iab_categories()}


@app.post("/api/episodes/export/bulk")
def bulk_export(body: BulkExportRequest):
    episodes = db.list_episode_records(body.episodeIds)
    if not episodes:
        raise NotFoundError("No episodes found")

    publishers = db.publisher_names(ep.publisher_id for ep in episodes)
    payload = format_bulk(episodes, body.format, publishers)
    stamp = int(time.time() * 1000)

    if body.format == "csv":
        return PlainTextResponse(
            payload,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="episodes-export-{stamp}.csv"'},
        )
    name = "episodes-export" if body.format == "json" else f"episodes-{body.format}"
    return JSONResponse(
        payload,
        headers={"Content-Disposition": f'attachment; filename="{name}-{stamp}.json"'},
    )


@app.get("/api/episodes/{episode_id}")
def get_episode(episode_id: int):
    return db.get_episode_detail(episode_id)


@app.patch("/api/episodes/{episode_id}")
def update_episode(episode_id: int, body: EpisodeUpdate):
    if body.adBreaks is None:
        return db.get_episode_detail(episode_id)
    breaks = [
        AdBreak(id=b.id, start_time=b.startTime, max_duration=b.maxDuration)
        for b in body.adBreaks
    ]
    return db.replace_ad_breaks(episode_id, breaks)


@app.get("/api/episodes/{episode_id}/export/gam")
def export_gam(episode_id: int, format: Literal["json", "text"] = "json"):
    """Key-values as JSON, or as `key = value` lines with ?format=text."""
    episode = db.get_episode(episode_id)
    if format == "text":
        return PlainTextResponse(format_gam_manual_entry(episode))
    return format_gam_kvs(episode)


@app.get("/api/episodes/{episode_id}/export/prebid")
def export_prebid(episode_id: int):
    return format_prebid_ext(db.get_episode(episode_id))


# ── API: campaigns ───────────────────────────────────────────────────


@app.get("/api/campaigns")
def list_campaigns(publisherId: Optional[int] = None):
    items = campaigns.list_campaigns(publisherId)
    return {"campaigns": items, "count": len(items)}


@app.post("/api/campaigns", status_code=201)
def create_campaign(body: CampaignCreate):
    return campaigns.create_campaign(
        name=body.name,
        budget=body.budget,
        publisher_id=body.publisherId,
        status=body.status,
        targeting_filters=body.targetingFilters.stored() if body.targetingFilters else None,
        impressions=body.impressions,
        ctr=body.ctr,
    )


@app.get("/api/campaigns/{campaign_id}")
def get_campaign(campaign_id: int):
    return campaigns.get_campaign(campaign_id)


@app.put("/api/campaigns/{campaign_id}")
def update_campaign(campaign_id: int, body: CampaignUpdate):
    provided = body.model_dump(exclude_unset=True)
    changes = {key: provided[key] for key in ("name", "budget", "status", "impressions", "ctr") if key in provided}
    if "targetingFilters" in provided:
        filters = body.targetingFilters
        changes["targeting_filters"] = filters.stored() if filters is not None else None
    return campaigns.update_campaign(campaign_id, changes)


# ── API: ingestion ───────────────────────────────────────────────────


@app.post("/api/ingest/rss")
def ingest_rss(body: IngestRequest):
    result = ingest_feed(body.publisherId, body.rssUrl, body.autoAnalyze)
    return result.to_dict()


# ── API: bid-request pass-through ────────────────────────────────────


@app.post("/api/prebid")
def prebid_proxy(request: Request, bid_request: dict = Body(...)):
    """Inject episode metadata into an OpenRTB request and forward it unchanged otherwise."""
    episode_id = extract_episode_id(bid_request, request.query_params)
    enhanced = bid_request
    if episode_id is not None:
        try:
            enhanced = inject_bid_metadata(bid_request, db.get_episode(episode_id))
        except NotFoundError:
            log.warning("Bid request references unknown episode %d – forwarding as-is", episode_id)

    resp = post_json(
        PREBID_SERVER_URL,
        enhanced,
        headers={"x-openrtb-version": "2.5"},
    )
    if resp.status_code >= 400:
        return JSONResponse(
            status_code=resp.status_code,
            content={"error": "Prebid Server request failed", "message": resp.text},
        )
    if resp.status_code == 204 or not resp.content:
        return Response(status_code=resp.status_code)
    return resp.json()


# ── Run directly ─────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    sys.path.insert(0, str(PROJECT_ROOT))
    uvicorn.run("web.app:app", host="0.0.0.0", port=8000, reload=True)
