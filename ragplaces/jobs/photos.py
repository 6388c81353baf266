"""CLI job that backfills photos, or ratings with --ratings, for stored places."""

import argparse
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

import psycopg2
import requests

from ragplaces.core import db
from ragplaces.core.config import ConfigError, Settings, get_settings, require
from ragplaces.core.photos import fetch_and_store_photo
from ragplaces.vendors import google_places
from ragplaces.vendors.google_places import GooglePlacesError

logger = logging.getLogger(__name__)

PHOTO_DELAY_SECONDS = 0.12
RATING_FIELDS = ("rating", "userRatingCount")


@dataclass(slots=True)
class BackfillStats:
    scanned: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


def run_backfill(
    settings: Settings,
    *,
    region: Optional[str] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> BackfillStats:
    stats = BackfillStats()
    rows = db.list_missing_images(region=region, limit=limit)
    logger.info("Found %d places without a photo", len(rows))

    for row in rows:
        stats.scanned += 1
        if dry_run:
            logger.info("[dry-run] would fetch photo for %s/%s", row["region"], row["name_local"])
            continue
        url = fetch_and_store_photo(row["google_place_id"], row["region"], settings)
        if not url:
            stats.skipped += 1
        else:
            try:
                db.update_image_url(row["id"], url)
                stats.updated += 1
            except psycopg2.Error as exc:
                stats.failed += 1
                logger.error("Failed to update image_url for %s: %s", row["id"], exc)
        time.sleep(PHOTO_DELAY_SECONDS)

    logger.info(
        "Photo backfill finished: scanned=%d updated=%d skipped=%d failed=%d",
        stats.scanned,
        stats.updated,
        stats.skipped,
        stats.failed,
    )
    return stats


def run_rating_backfill(
    settings: Settings,
    *,
    region: Optional[str] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> BackfillStats:
    """Fill missing rating and review_count from place details."""
    stats = BackfillStats()
    rows = db.list_missing_ratings(region=region, limit=limit)
    logger.info("Found %d places without a rating", len(rows))

    for row in rows:
        stats.scanned += 1
        if dry_run:
            logger.info("[dry-run] would fetch rating for %s/%s", row["region"], row["name_local"])
            continue
        try:
            details = google_places.get_place(row["google_place_id"], settings.google_api_key, fields=RATING_FIELDS)
            rating, review_count = details.get("rating"), details.get("userRatingCount")
            if db.fill_missing_details(row["id"], rating=rating, review_count=review_count):
                stats.updated += 1
                logger.info("%s/%s rating=%s reviews=%s", row["region"], row["name_local"], rating, review_count)
            else:
                stats.skipped += 1
        except (requests.RequestException, GooglePlacesError, psycopg2.Error) as exc:
            stats.failed += 1
            logger.error("Failed to backfill rating for %s: %s", row["id"], exc)
        time.sleep(PHOTO_DELAY_SECONDS)

    logger.info(
        "Rating backfill finished: scanned=%d updated=%d skipped=%d failed=%d",
        stats.scanned,
        stats.updated,
        stats.skipped,
        stats.failed,
    )
    return stats


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backfill place photos into storage, or missing ratings")
    parser.add_argument("--region", help="Only rows for this region")
    parser.add_argument("--limit", type=int, help="Maximum rows to process")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="List rows without fetching")
    parser.add_argument("--ratings", action="store_true", help="Fill missing rating/review_count instead of photos")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> BackfillStats:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)
    settings = get_settings()
    fields = ["database_url"]
    if args.ratings and not args.dry_run:
        fields.append("google_api_key")
    elif not args.dry_run:
        fields += ["google_api_key", "supabase_url", "supabase_service_key"]
    try:
        require(settings, *fields)
    except ConfigError as exc:
        logger.error("%s", exc)
        raise SystemExit(2) from exc

    db.init_pool(settings)
    region = args.region.strip().lower() if args.region else None
    job = run_rating_backfill if args.ratings else run_backfill
    return job(settings, region=region, limit=args.limit, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
