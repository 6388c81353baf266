"""Utilities for turning generator and Places payloads into typed records and rows."""

import logging
import re
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional

from ragplaces.models import Candidate, PlaceMention, SearchResult, VerifiedPlace

logger = logging.getLogger(__name__)

_ALLOWED_TIMES = {"morning", "noon", "evening", "any"}
_KO_DAYS = ("일요일", "월요일", "화요일", "수요일", "목요일", "금요일", "토요일")


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"\d+", value)
        if match:
            return int(match.group())
    return None


def normalize_recommended_time(value: Any) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    text = value.strip().lower()
    if text in _ALLOWED_TIMES:
        return text
    if "lunch" in text:
        return "noon"
    if "breakfast" in text or "morning" in text:
        return "morning"
    if "dinner" in text or "evening" in text or "night" in text:
        return "evening"
    return None


def candidate_from_payload(item: Any, category: str) -> Optional[Candidate]:
    """Validate one generator item; items without any usable name are dropped."""
    if not isinstance(item, dict):
        return None
    name_local = _strip_or_none(item.get("name_ko"))
    name_native = _strip_or_none(item.get("name_ja"))
    if not name_local and not name_native:
        return None
    tags = item.get("tags")
    return Candidate(
        name_local=name_local or name_native,
        name_native=name_native,
        category=category,
        description=_strip_or_none(item.get("description")) or "",
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
        price_range=_strip_or_none(item.get("price_range")),
        typical_duration_min=_safe_int(item.get("typical_duration_min")),
        recommended_time=normalize_recommended_time(item.get("recommended_time")),
    )


def candidates_from_payload(items: Iterable[Any], category: str) -> List[Candidate]:
    candidates = []
    for item in items or []:
        candidate = candidate_from_payload(item, category)
        if candidate is None:
            logger.debug("Dropping generator item without a name: %s", item)
            continue
        candidates.append(candidate)
    return candidates


def legacy_hours(opening_hours: Optional[Dict[str, Any]]) -> Optional[str]:
    if not opening_hours:
        return None
    weekday_text = opening_hours.get("weekday_text")
    if weekday_text:
        return "; ".join(weekday_text)
    open_now = opening_hours.get("open_now")
    if open_now is None:
        return None
    return "Open" if open_now else "Closed"


def periods_to_hours(periods: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """Render v1 ``periods`` as "월요일: 11:00 – 22:00; ..." when weekday text is absent."""
    if not periods:
        return None
    by_day: Dict[int, str] = {}
    for period in periods:
        opening = period.get("open") or {}
        day = opening.get("day")
        if day is None:
            continue
        closing = period.get("close")
        if not closing:
            by_day[day] = "24시간 영업"
            continue
        by_day[day] = "{:02d}:{:02d} – {:02d}:{:02d}".format(
            opening.get("hour", 0), opening.get("minute", 0), closing.get("hour", 0), closing.get("minute", 0)
        )
    return "; ".join(f"{_KO_DAYS[day]}: {by_day.get(day, '휴무')}" for day in range(7))


def v1_hours(regular_opening_hours: Optional[Dict[str, Any]]) -> Optional[str]:
    if not regular_opening_hours:
        return None
    descriptions = regular_opening_hours.get("weekdayDescriptions")
    if descriptions:
        return "; ".join(descriptions)
    return periods_to_hours(regular_opening_hours.get("periods"))


def result_from_legacy(result: Dict[str, Any]) -> SearchResult:
    location = (result.get("geometry") or {}).get("location") or {}
    return SearchResult(
        display_name=(result.get("name") or "").strip(),
        place_id=result.get("place_id"),
        formatted_address=_strip_or_none(result.get("formatted_address")),
        lat=_safe_float(location.get("lat")),
        lon=_safe_float(location.get("lng")),
        rating=_safe_float(result.get("rating")),
        review_count=_safe_int(result.get("user_ratings_total")),
        opening_hours=legacy_hours(result.get("opening_hours")),
        business_status=result.get("business_status"),
        raw=result,
    )


def result_from_v1(place: Dict[str, Any]) -> SearchResult:
    location = place.get("location") or {}
    place_id = place.get("id")
    if not place_id and place.get("name"):
        place_id = str(place["name"]).replace("places/", "", 1)
    return SearchResult(
        display_name=((place.get("displayName") or {}).get("text") or "").strip(),
        place_id=place_id,
        formatted_address=_strip_or_none(place.get("formattedAddress")),
        lat=_safe_float(location.get("latitude")),
        lon=_safe_float(location.get("longitude")),
        rating=_safe_float(place.get("rating")),
        review_count=_safe_int(place.get("userRatingCount")),
        opening_hours=v1_hours(place.get("regularOpeningHours")),
        business_status=place.get("businessStatus"),
        raw=place,
    )


def mention_from_payload(item: Any) -> Optional[PlaceMention]:
    if not isinstance(item, dict):
        return None
    desc = _strip_or_none(item.get("desc"))
    if not desc:
        return None
    return PlaceMention(
        desc=desc,
        category=_strip_or_none(item.get("type")) or "spot",
        region=_strip_or_none(item.get("region")),
        lat=_safe_float(item.get("lat")),
        lon=_safe_float(item.get("lon")),
    )


def to_place_row(place: VerifiedPlace) -> Dict[str, Any]:
    row = asdict(place)
    row["confidence"] = place.confidence.value
    row["tags"] = list(place.tags or [])
    row.pop("observed_name", None)
    return row
