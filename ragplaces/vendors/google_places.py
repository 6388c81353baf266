"""Client utilities for the Google Places API (legacy Text Search and Places API v1)."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_V1_URL = "https://places.googleapis.com/v1"

SEARCH_FIELDS = (
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.location",
    "places.rating",
    "places.userRatingCount",
    "places.regularOpeningHours",
    "places.businessStatus",
)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""


def _v1_error(response: requests.Response) -> GooglePlacesError:
    try:
        message = response.json().get("error", {}).get("message")
    except ValueError:
        message = None
    return GooglePlacesError(f"HTTP {response.status_code}: {message or response.reason}")


def text_search(
    query: str,
    api_key: str,
    location: Optional[Tuple[float, float]] = None,
    radius: int = 50000,
    language: str = "ja",
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"query": query, "key": api_key, "language": language}
    if location:
        params["location"] = f"{location[0]},{location[1]}"
        params["radius"] = radius
    response = _SESSION.get(f"{_BASE_URL}/textsearch/json", params=params, timeout=10)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("text_search failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status)
    return payload


def search_text(
    query: str,
    api_key: str,
    location: Optional[Tuple[float, float]] = None,
    radius: int = 50000,
    language: str = "ja",
    max_results: int = 1,
    included_type: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Places API v1 ``places:searchText``; returns the raw ``places`` list."""
    body: Dict[str, Any] = {"textQuery": query, "languageCode": language, "maxResultCount": max_results}
    if location:
        body["locationBias"] = {
            "circle": {"center": {"latitude": location[0], "longitude": location[1]}, "radius": radius}
        }
    if included_type:
        body["includedType"] = included_type
    headers = {"X-Goog-Api-Key": api_key, "X-Goog-FieldMask": ",".join(SEARCH_FIELDS)}
    response = _SESSION.post(f"{_V1_URL}/places:searchText", json=body, headers=headers, timeout=10)
    if response.status_code >= 400:
        error = _v1_error(response)
        logger.error("search_text failed: %s", error)
        raise error
    return response.json().get("places") or []


def get_place(
    place_id: str,
    api_key: str,
    fields: Iterable[str],
    language: Optional[str] = None,
) -> Dict[str, Any]:
    params = {"languageCode": language} if language else None
    headers = {"X-Goog-Api-Key": api_key, "X-Goog-FieldMask": ",".join(fields)}
    response = _SESSION.get(f"{_V1_URL}/places/{place_id}", params=params, headers=headers, timeout=10)
    if response.status_code >= 400:
        error = _v1_error(response)
        logger.error("get_place failed for %s: %s", place_id, error)
        raise error
    return response.json()


def download_photo(photo_name: str, api_key: str, max_width: int = 1600) -> bytes:
    params = {"maxWidthPx": max_width, "key": api_key}
    response = _SESSION.get(f"{_V1_URL}/{photo_name}/media", params=params, timeout=20, allow_redirects=True)
    response.raise_for_status()
    return response.content
