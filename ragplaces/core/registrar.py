"""Quota-limited auto-registration of places mentioned in chat answers.

Mentions arrive in small batches with an optional destination hint. A mention
already stored under its region is served from the store without a search.
Others are verified against the Places provider and, when they resolve to a
real listing, stored as ``auto_verified``. Human-verified rows always win:
they are never overwritten, only filled in where rating, hours or a photo is
missing.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
import requests

from ragplaces.core import db
from ragplaces.core.config import Settings
from ragplaces.core.photos import fetch_and_store_photo
from ragplaces.core.regions import HINT_MAX_DISTANCE_KM, geo_distance_km, get_region, nearest_region, region_from_label
from ragplaces.core.verifier import verify_candidate
from ragplaces.etl.transform import v1_hours
from ragplaces.models import Candidate, Confidence, PlaceMention, RejectedCandidate, RejectReason, VerifiedPlace
from ragplaces.vendors import google_places
from ragplaces.vendors.google_places import GooglePlacesError

logger = logging.getLogger(__name__)

MENTION_DELAY_SECONDS = 0.15
ALTERNATE_LANGUAGE = "ko"
DETAIL_FIELDS = ("rating", "userRatingCount", "regularOpeningHours", "formattedAddress", "businessStatus")


@dataclass(slots=True)
class MentionOutcome:
    desc: str
    status: str
    region: Optional[str] = None
    place_id: Optional[str] = None
    reason: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(slots=True)
class RegistrationSummary:
    received: int
    attempted: int = 0
    registered: int = 0
    daily_limit_reached: bool = False
    outcomes: List[MentionOutcome] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "received": self.received,
            "attempted": self.attempted,
            "registered": self.registered,
            "daily_limit_reached": self.daily_limit_reached,
            "outcomes": [
                {
                    "desc": item.desc,
                    "status": item.status,
                    "region": item.region,
                    "place_id": item.place_id,
                    "reason": item.reason,
                    "image_url": item.image_url,
                }
                for item in self.outcomes
            ],
        }


def start_of_utc_day(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def remaining_quota(settings: Settings, now: Optional[datetime] = None) -> int:
    already = db.count_auto_verified_since(start_of_utc_day(now))
    return max(0, settings.daily_auto_limit - already)


def resolve_region(mention: PlaceMention, region_hint: Optional[str], settings: Settings) -> str:
    """Coordinates first, then the mention's own label, the hint, and finally the default."""
    return (
        nearest_region(mention.lat, mention.lon)
        or region_from_label(mention.region)
        or region_from_label(region_hint)
        or settings.default_region
    )


def _too_far_from_hint(place: VerifiedPlace, region_hint: Optional[str]) -> Optional[float]:
    hint_region = get_region(region_from_label(region_hint))
    if hint_region is None or place.lat is None or place.lon is None:
        return None
    distance = geo_distance_km(place.lat, place.lon, hint_region.center[0], hint_region.center[1])
    return distance if distance > HINT_MAX_DISTANCE_KM else None


def _apply_details(place: VerifiedPlace, settings: Settings) -> None:
    """Fill rating, hours and address from a details call. Failures keep search data."""
    try:
        details = google_places.get_place(
            place.google_place_id, settings.google_api_key, fields=DETAIL_FIELDS, language=ALTERNATE_LANGUAGE
        )
    except (requests.RequestException, GooglePlacesError) as exc:
        logger.warning("Place details failed for %s: %s", place.google_place_id, exc)
        return
    if details.get("rating") is not None:
        place.rating = details["rating"]
    if details.get("userRatingCount") is not None:
        place.review_count = details["userRatingCount"]
    place.opening_hours = v1_hours(details.get("regularOpeningHours")) or place.opening_hours
    place.address = details.get("formattedAddress") or place.address
    place.business_status = details.get("businessStatus") or place.business_status


def _backfill_photo(row: Dict[str, Any], settings: Settings) -> Optional[str]:
    if row.get("image_url") or not row.get("google_place_id"):
        return row.get("image_url")
    url = fetch_and_store_photo(row["google_place_id"], row["region"], settings)
    if url:
        try:
            db.update_image_url(row["id"], url)
        except psycopg2.Error as exc:
            logger.warning("Failed to store image_url for row %s: %s", row["id"], exc)
            return None
    return url


def _fill_missing_details(row: Dict[str, Any], settings: Settings) -> None:
    """Fetch only the detail fields a stored row lacks and write them back."""
    fields: List[str] = []
    if row.get("rating") is None or row.get("review_count") is None:
        fields += ["rating", "userRatingCount"]
    if not row.get("opening_hours"):
        fields.append("regularOpeningHours")
    if not fields or not row.get("google_place_id"):
        return
    try:
        details = google_places.get_place(
            row["google_place_id"], settings.google_api_key, fields=fields, language=ALTERNATE_LANGUAGE
        )
        db.fill_missing_details(
            row["id"],
            rating=details.get("rating"),
            review_count=details.get("userRatingCount"),
            opening_hours=v1_hours(details.get("regularOpeningHours")),
        )
    except (requests.RequestException, GooglePlacesError, psycopg2.Error) as exc:
        logger.warning("Enriching stored row %s failed: %s", row.get("id"), exc)


def _enrich_stored(row: Dict[str, Any], settings: Settings) -> Optional[str]:
    _fill_missing_details(row, settings)
    return _backfill_photo(row, settings)


def _verify(mention: PlaceMention, region_key: str, settings: Settings):
    candidate = Candidate(name_local=mention.desc, category=mention.category)
    outcome = verify_candidate(candidate, region_key, settings)
    if isinstance(outcome, RejectedCandidate) and outcome.reason is RejectReason.NAME_MISMATCH:
        logger.info("Retrying %s with language=%s after name mismatch", mention.desc, ALTERNATE_LANGUAGE)
        outcome = verify_candidate(candidate, region_key, settings, language=ALTERNATE_LANGUAGE)
    return outcome


def process_mention(mention: PlaceMention, region_hint: Optional[str], settings: Settings) -> MentionOutcome:
    region_key = resolve_region(mention, region_hint, settings)
    stored = db.find_by_key(region_key, mention.desc)
    if stored and stored.get("google_place_id"):
        logger.info("%s already stored as %s/%s; skipping search", mention.desc, region_key, stored["google_place_id"])
        url = _enrich_stored(stored, settings)
        return MentionOutcome(
            mention.desc,
            "existing",
            region=stored.get("region") or region_key,
            place_id=stored["google_place_id"],
            image_url=url,
        )

    outcome = _verify(mention, region_key, settings)
    if isinstance(outcome, RejectedCandidate):
        logger.info("Rejected %s (%s): %s", mention.desc, region_key, outcome.reason.value)
        return MentionOutcome(mention.desc, "rejected", region=region_key, reason=outcome.reason.value)

    place = outcome
    distance = _too_far_from_hint(place, region_hint)
    if distance is not None:
        logger.warning("%s matched %.0fkm away from %s; rejecting", mention.desc, distance, region_hint)
        return MentionOutcome(mention.desc, "rejected", region=region_key, reason="too_far_from_hint")
    place.region = nearest_region(place.lat, place.lon) or region_key
    place.name_native = place.name_native or place.observed_name

    if place.google_place_id:
        existing = db.find_by_place_id(place.google_place_id)
        if existing:
            url = _enrich_stored(existing, settings)
            return MentionOutcome(
                mention.desc, "existing", region=existing.get("region"), place_id=place.google_place_id, image_url=url
            )

    by_key = db.find_by_key(place.region, place.name_local)
    if by_key and by_key.get("confidence") == Confidence.VERIFIED.value:
        url = _enrich_stored(by_key, settings)
        return MentionOutcome(
            mention.desc, "kept_verified", region=place.region, place_id=by_key.get("google_place_id"), image_url=url
        )

    if place.google_place_id:
        _apply_details(place, settings)
    place.confidence = Confidence.AUTO_VERIFIED
    row_id = db.upsert_auto_verified(place)
    if row_id is None:
        # a verified row appeared between the lookup and the write
        return MentionOutcome(mention.desc, "kept_verified", region=place.region, place_id=place.google_place_id)

    url = None
    if place.google_place_id:
        url = _backfill_photo(
            {"id": row_id, "region": place.region, "google_place_id": place.google_place_id}, settings
        )
    logger.info("Registered %s as %s/%s (id=%s)", mention.desc, place.region, place.category, row_id)
    return MentionOutcome(
        mention.desc, "registered", region=place.region, place_id=place.google_place_id, image_url=url
    )


def register_places(
    mentions: Sequence[PlaceMention],
    region_hint: Optional[str],
    settings: Settings,
    now: Optional[datetime] = None,
) -> RegistrationSummary:
    summary = RegistrationSummary(received=len(mentions))
    remaining = remaining_quota(settings, now)
    batch = list(mentions[:remaining])
    if len(batch) < len(mentions):
        summary.daily_limit_reached = True
        logger.info(
            "Daily auto-registration limit: processing %d of %d mentions (limit=%d)",
            len(batch),
            len(mentions),
            settings.daily_auto_limit,
        )
    summary.attempted = len(batch)

    for mention in batch:
        try:
            outcome = process_mention(mention, region_hint, settings)
        except Exception as exc:  # noqa: BLE001
            logger.error("Auto-registration failed for %s: %s", mention.desc, exc)
            outcome = MentionOutcome(mention.desc, "failed", reason=str(exc))
        summary.outcomes.append(outcome)
        if outcome.status == "registered":
            summary.registered += 1
        time.sleep(MENTION_DELAY_SECONDS)

    logger.info(
        "Auto-registration finished: received=%d attempted=%d registered=%d",
        summary.received,
        summary.attempted,
        summary.registered,
    )
    return summary
