"""Resolve one candidate against the Places provider.

The primary query is the candidate's native name plus the region's native
label, biased to a circle around the region centroid. When that finds
nothing we retry with a shortened name (branch qualifiers confuse Text
Search), then with the Places v1 surface, before giving up with
``no_result``. A hit is only accepted when its display name matches the
candidate name.
"""

import logging
import time
from typing import Callable, List, Union

import requests

from ragplaces.core.regions import SEARCH_RADIUS_M, Region, get_region
from ragplaces.core.config import Settings
from ragplaces.etl.transform import result_from_legacy, result_from_v1
from ragplaces.matching.similarity import MatchMode, is_match
from ragplaces.models import Candidate, Confidence, RejectedCandidate, RejectReason, SearchResult, VerifiedPlace
from ragplaces.vendors import google_places
from ragplaces.vendors.google_places import GooglePlacesError

logger = logging.getLogger(__name__)

SHORT_QUERY_CHARS = 12
FALLBACK_DELAY_SECONDS = 0.2

VerificationOutcome = Union[VerifiedPlace, RejectedCandidate]


def build_query(name: str, region_label: str, short: bool = False) -> str:
    name = (name or "").strip()
    if not name:
        return region_label
    if short:
        tokens = name.split()
        name = " ".join(tokens[:2]) if len(tokens) >= 2 else name[:SHORT_QUERY_CHARS]
    return f"{name} {region_label}"


def _legacy_search(query: str, region: Region, settings: Settings, language: str) -> List[SearchResult]:
    payload = google_places.text_search(
        query,
        settings.google_api_key,
        location=region.center,
        radius=SEARCH_RADIUS_M,
        language=language,
    )
    return [result_from_legacy(result) for result in (payload.get("results") or [])[:1]]


def _v1_search(query: str, region: Region, settings: Settings, language: str) -> List[SearchResult]:
    places = google_places.search_text(
        query,
        settings.google_api_key,
        location=region.center,
        radius=SEARCH_RADIUS_M,
        language=language,
        max_results=1,
    )
    return [result_from_v1(place) for place in places[:1]]


def _fallback(search: Callable[[], List[SearchResult]], label: str, query: str) -> List[SearchResult]:
    time.sleep(FALLBACK_DELAY_SECONDS)
    try:
        return search()
    except (requests.RequestException, GooglePlacesError) as exc:
        logger.warning("%s failed for query=%s: %s", label, query, exc)
        return []


def to_verified_place(
    candidate: Candidate,
    region_key: str,
    result: SearchResult,
    confidence: Confidence = Confidence.VERIFIED,
) -> VerifiedPlace:
    return VerifiedPlace(
        region=region_key,
        name_local=candidate.name_local,
        name_native=candidate.name_native,
        category=candidate.category,
        description=candidate.description or None,
        tags=list(candidate.tags),
        price_range=candidate.price_range,
        typical_duration_min=candidate.typical_duration_min,
        recommended_time=candidate.recommended_time,
        address=result.formatted_address,
        lat=result.lat,
        lon=result.lon,
        opening_hours=result.opening_hours,
        rating=result.rating,
        review_count=result.review_count,
        google_place_id=result.place_id,
        confidence=confidence,
        business_status=result.business_status,
        observed_name=result.display_name,
    )


def verify_candidate(
    candidate: Candidate,
    region_key: str,
    settings: Settings,
    mode: MatchMode = MatchMode.STRICT,
    language: str = "ja",
) -> VerificationOutcome:
    region = get_region(region_key)
    if region is None:
        return RejectedCandidate(candidate, RejectReason.UNKNOWN_REGION, error=f"Unknown region: {region_key}")

    name = candidate.query_name
    query = build_query(name, region.name_native)
    try:
        results = _legacy_search(query, region, settings, language)
    except requests.RequestException as exc:
        return RejectedCandidate(candidate, RejectReason.REQUEST_FAILED, error=str(exc))
    except GooglePlacesError as exc:
        return RejectedCandidate(candidate, RejectReason.API_ERROR, error=str(exc))

    if not results:
        short_query = build_query(name, region.name_native, short=True)
        if short_query != query:
            query = short_query
            results = _fallback(lambda: _legacy_search(short_query, region, settings, language), "Short query", query)
    if not results:
        fallback_query = query
        results = _fallback(lambda: _v1_search(fallback_query, region, settings, language), "Places v1 search", query)
    if not results:
        return RejectedCandidate(candidate, RejectReason.NO_RESULT)

    first = results[0]
    if not is_match(name, first.display_name, mode):
        return RejectedCandidate(candidate, RejectReason.NAME_MISMATCH, observed_name=first.display_name)
    return to_verified_place(candidate, region.key, first)
