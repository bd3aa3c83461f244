#!/usr/bin/env python3
"""podsignal – contextual enrichment and targeting for podcast ad inventory.

Usage:
    python main.py ingest              # ingest all configured feeds once (default)
    python main.py ingest --schedule   # ingest on the configured cron schedule
    python main.py serve               # run the REST API with uvicorn
    python main.py seed                # create tables and the default publisher
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

# ── Ensure project root is on sys.path ───────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ── Load .env file (if present) ──────────────────────────────────────
_env_path = PROJECT_ROOT / ".env"
load_dotenv(_env_path, override=True)  # override=True so .env always wins

from ingest.pipeline import ingest_configured_feeds
from storage.db import init_db

# ── Logging setup ────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


log = logging.getLogger("podsignal")


# ── Config loading ───────────────────────────────────────────────────
CONFIG_DIR = PROJECT_ROOT / "config"


def load_sources(path: Path | None = None) -> dict:
    path = path or CONFIG_DIR / "sources.yaml"
    if not path.exists():
        log.warning("No sources config at %s – using publisher feeds only", path)
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# ── Ingestion run ────────────────────────────────────────────────────


def run_ingest(sources: dict | None = None) -> None:
    """Ingest every configured feed once."""
    log.info("=== podsignal ingest starting ===")
    sources = load_sources() if sources is None else sources

    init_db(seed=True)

    results = ingest_configured_feeds(
        sources.get("feeds", []),
        include_publisher_feeds=sources.get("include_publisher_feeds", True),
        auto_analyze=sources.get("auto_analyze", False),
    )
    created = sum(r.created for r in results)
    skipped = sum(r.skipped for r in results)
    failures = sum(r.enrichment_failures for r in results)
    log.info(
        "Ingested %d feeds: %d created, %d skipped, %d enrichment failures",
        len(results),
        created,
        skipped,
        failures,
    )
    log.info("=== podsignal ingest finished ===")


# ── Scheduler ────────────────────────────────────────────────────────


def run_scheduled(sources: dict) -> None:
    """Run ingestion on the cron schedule from the sources config."""
    try:
        from apscheduler.schedulers.blocking import BlockingScheduler
        from apscheduler.triggers.cron import CronTrigger
    except ImportError:
        log.error("apscheduler is required for --schedule mode.  pip install apscheduler")
        sys.exit(1)

    schedule = sources.get("schedule", {})
    hour = schedule.get("hour", 6)
    minute = schedule.get("minute", 0)
    tz = schedule.get("timezone", "UTC")

    scheduler = BlockingScheduler()
    trigger = CronTrigger(hour=hour, minute=minute, timezone=tz)
    scheduler.add_job(run_ingest, trigger, args=[sources], id="feed_ingest", name="Feed ingest")
    log.info("Scheduler started – next run at %02d:%02d %s", hour, minute, tz)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("Scheduler stopped")


# ── CLI ──────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="podsignal ad-ops backend")
    sub = parser.add_subparsers(dest="command")

    ingest = sub.add_parser("ingest", help="Ingest configured RSS feeds")
    ingest.add_argument(
        "--schedule",
        action="store_true",
        help="Run on the schedule in config/sources.yaml instead of once",
    )
    ingest.add_argument("--config", type=Path, default=None, help="Path to a sources.yaml")

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    sub.add_parser("seed", help="Create tables and the default publisher")

    args = parser.parse_args(argv)
    _setup_logging()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("web.app:app", host=args.host, port=args.port, reload=args.reload)
    elif args.command == "seed":
        init_db(seed=True)
    else:
        sources = load_sources(getattr(args, "config", None))
        if getattr(args, "schedule", False):
            run_scheduled(sources)
        else:
            run_ingest(sources)


if __name__ == "__main__":
    main()
