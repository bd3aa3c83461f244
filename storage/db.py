"""Database helpers – SQLite for MVP, easy swap to Postgres."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Iterable, Sequence

from sqlalchemy import create_engine, func
from sqlalchemy.orm import Session, sessionmaker

from exceptions import NotFoundError
from storage.models import (
    AdBreak,
    Base,
    EnrichedMetadata,
    EpisodeCategoryRow,
    EpisodeRecord,
    EpisodeRow,
    PublisherRow,
)

log = logging.getLogger(__name__)

DEFAULT_PUBLISHER_NAME = os.getenv("DEFAULT_PUBLISHER_NAME", "Default Publisher")

# ── Engine / session factory ─────────────────────────────────────────

_engine = None
_SessionFactory: sessionmaker[Session] | None = None


def _get_database_url() -> str:
    """Return the DB URL.  Postgres swap: set DATABASE_URL env var."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    db_path = os.getenv("SQLITE_PATH", "podsignal.db")
    return f"sqlite:///{db_path}"


def init_db(seed: bool = False) -> None:
    """Create engine, session factory, and tables (idempotent).

    With *seed* the default publisher used by manual analysis is created
    up front, so no request path has to create it on the fly.
    """
    global _engine, _SessionFactory
    url = _get_database_url()
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, echo=False, connect_args=connect_args)
    _SessionFactory = sessionmaker(bind=_engine)
    Base.metadata.create_all(_engine)
    log.info("Database initialised (%s)", url.split("///")[0] + "///…")
    if seed:
        ensure_default_publisher()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Provide a transactional session scope."""
    if _SessionFactory is None:
        raise RuntimeError("Call init_db() first")
    session = _SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ── Publishers ───────────────────────────────────────────────────────


def ensure_default_publisher() -> int:
    """Return the id of the default publisher, creating it if missing."""
    with get_session() as session:
        row = (
            session.query(PublisherRow)
            .filter(PublisherRow.name == DEFAULT_PUBLISHER_NAME)
            .first()
        )
        if row is None:
            row = PublisherRow(name=DEFAULT_PUBLISHER_NAME, email=None, rss_feeds=[])
            session.add(row)
            session.flush()
            log.info("Seeded default publisher id=%d", row.id)
        return row.id


def get_default_publisher_id() -> int:
    with get_session() as session:
        row = (
            session.query(PublisherRow)
            .filter(PublisherRow.name == DEFAULT_PUBLISHER_NAME)
            .first()
        )
        if row is None:
            raise NotFoundError("Default publisher has not been seeded")
        return row.id


def require_publisher(session: Session, publisher_id: int) -> PublisherRow:
    row = session.get(PublisherRow, publisher_id)
    if row is None:
        raise NotFoundError("Publisher not found")
    return row


def create_publisher(
    name: str,
    email: str | None = None,
    company: str | None = None,
    rss_feeds: Sequence[str] | None = None,
) -> dict:
    with get_session() as session:
        row = PublisherRow(
            name=name,
            email=email or None,
            company=company or None,
            rss_feeds=list(rss_feeds or []),
        )
        session.add(row)
        session.flush()
        log.info("Created publisher id=%d (%s)", row.id, name)
        return row.to_dict()


def list_publishers() -> list[dict]:
    with get_session() as session:
        counts = dict(
            session.query(EpisodeRow.publisher_id, func.count(EpisodeRow.id))
            .group_by(EpisodeRow.publisher_id)
            .all()
        )
        rows = session.query(PublisherRow).order_by(PublisherRow.created_at.desc()).all()
        result = []
        for row in rows:
            data = row.to_dict()
            data["episodeCount"] = counts.get(row.id, 0)
            result.append(data)
        return result


def get_publisher(publisher_id: int) -> dict:
    """Publisher with its episodes, newest first."""
    with get_session() as session:
        row = require_publisher(session, publisher_id)
        data = row.to_dict()
        episodes = sorted(row.episodes, key=lambda e: e.created_at, reverse=True)
        data["episodes"] = [e.to_dict() for e in episodes]
        return data


def update_publisher(publisher_id: int, changes: dict[str, Any]) -> dict:
    """Apply a partial update.  Empty email/company strings are stored as NULL."""
    with get_session() as session:
        row = require_publisher(session, publisher_id)
        if "name" in changes:
            row.name = changes["name"]
        if "email" in changes:
            row.email = changes["email"] or None
        if "company" in changes:
            row.company = changes["company"] or None
        if "rss_feeds" in changes:
            row.rss_feeds = list(changes["rss_feeds"])
        session.flush()
        return row.to_dict()


def list_publisher_feeds() -> list[tuple[int, str]]:
    """Return (publisher_id, feed_url) for every feed stored on a publisher."""
    with get_session() as session:
        pairs: list[tuple[int, str]] = []
        for row in session.query(PublisherRow).order_by(PublisherRow.id).all():
            for url in row.rss_feeds or []:
                pairs.append((row.id, url))
        return pairs


# ── Episodes ─────────────────────────────────────────────────────────


def require_episode(session: Session, episode_id: int) -> EpisodeRow:
    row = session.get(EpisodeRow, episode_id)
    if row is None:
        raise NotFoundError("Episode not found")
    return row


def apply_enrichment(session: Session, row: EpisodeRow, metadata: EnrichedMetadata) -> None:
    """Store enrichment output on *row* and refresh its category index rows."""
    row.enriched_metadata = metadata.to_dict()
    row.brand_safety_score = metadata.brand_safety_score
    row.sentiment = metadata.sentiment
    row.categories = [
        EpisodeCategoryRow(code=code) for code in dict.fromkeys(metadata.iab_categories)
    ]


def create_episode(
    session: Session,
    *,
    title: str,
    publisher_id: int,
    source_ref: str | None = None,
    transcript: str | None = None,
    created_at: datetime | None = None,
    metadata: EnrichedMetadata | None = None,
) -> EpisodeRow:
    row = EpisodeRow(
        title=title,
        publisher_id=publisher_id,
        source_ref=source_ref,
        transcript=transcript,
        contextual_score=None,
    )
    if created_at is not None:
        row.created_at = created_at
    if metadata is not None:
        apply_enrichment(session, row, metadata)
    session.add(row)
    session.flush()
    return row


def store_enrichment(episode_id: int, metadata: EnrichedMetadata) -> None:
    with get_session() as session:
        row = require_episode(session, episode_id)
        apply_enrichment(session, row, metadata)


def get_episode(episode_id: int) -> EpisodeRecord:
    with get_session() as session:
        return require_episode(session, episode_id).to_record()


def get_episode_detail(episode_id: int) -> dict:
    with get_session() as session:
        row = require_episode(session, episode_id)
        data = row.to_dict(include_publisher=True)
        data["publisher"]["company"] = row.publisher.company
        return data


def replace_ad_breaks(episode_id: int, breaks: Iterable[AdBreak]) -> dict:
    """Replace (never merge) the episode's ad breaks."""
    stored = []
    for index, brk in enumerate(breaks):
        stored.append(
            {
                "id": brk.id or f"break-{index}",
                "startTime": brk.start_time,
                "maxDuration": brk.max_duration,
            }
        )
    with get_session() as session:
        row = require_episode(session, episode_id)
        row.ad_breaks = stored
        session.flush()
        log.info("Episode %d: stored %d ad breaks", episode_id, len(stored))
        return row.to_dict()


def _episode_query(
    session: Session,
    *,
    publisher_id: int | None = None,
    sentiment: str | None = None,
    iab_category: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
):
    query = session.query(EpisodeRow)
    if publisher_id is not None:
        query = query.filter(EpisodeRow.publisher_id == publisher_id)
    if sentiment:
        query = query.filter(EpisodeRow.sentiment == sentiment)
    if iab_category:
        query = query.filter(
            EpisodeRow.id.in_(
                session.query(EpisodeCategoryRow.episode_id).filter(
                    EpisodeCategoryRow.code == iab_category
                )
            )
        )
    if date_from is not None:
        query = query.filter(EpisodeRow.created_at >= date_from)
    if date_to is not None:
        query = query.filter(EpisodeRow.created_at <= date_to)
    if search:
        query = query.filter(EpisodeRow.title.ilike(f"%{search}%"))
    return query


def list_episodes(
    *,
    limit: int | None = None,
    skip: int | None = None,
    **filters: Any,
) -> tuple[list[dict], int]:
    """Return (page of episodes newest first, total matching count)."""
    with get_session() as session:
        query = _episode_query(session, **filters)
        total = query.count()
        query = query.order_by(EpisodeRow.created_at.desc(), EpisodeRow.id.desc())
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return [row.to_dict(include_publisher=True) for row in query.all()], total


def list_episode_records(episode_ids: Sequence[int] | None = None) -> list[EpisodeRecord]:
    """Plain episode records in id order, optionally restricted to *episode_ids*."""
    with get_session() as session:
        query = session.query(EpisodeRow)
        if episode_ids is not None:
            query = query.filter(EpisodeRow.id.in_(list(episode_ids)))
        return [row.to_record() for row in query.order_by(EpisodeRow.id).all()]


def publisher_names(publisher_ids: Iterable[int]) -> dict[int, str]:
    with get_session() as session:
        rows = (
            session.query(PublisherRow.id, PublisherRow.name)
            .filter(PublisherRow.id.in_(set(publisher_ids)))
            .all()
        )
        return {pid: name for pid, name in rows}


def list_iab_categories() -> list[str]:
    """Distinct IAB codes across all enriched episodes, sorted."""
    with get_session() as session:
        rows = session.query(EpisodeCategoryRow.code).distinct().all()
        return sorted(code for (code,) in rows)
