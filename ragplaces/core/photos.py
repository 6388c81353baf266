"""Best-effort photo enrichment for stored places."""

import logging
from typing import Any, Dict, Iterable, Optional

import requests

from ragplaces.core.config import Settings
from ragplaces.vendors import google_places, storage
from ragplaces.vendors.google_places import GooglePlacesError

logger = logging.getLogger(__name__)

MIN_PHOTO_WIDTH = 400
MAX_PHOTO_WIDTH = 1600


def storage_path(region: str, place_id: str) -> str:
    return f"rag/{region}/{place_id}.jpg"


def pick_best_photo(photos: Optional[Iterable[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    """Largest photo by pixel area, preferring ones at least MIN_PHOTO_WIDTH wide."""
    usable = [photo for photo in (photos or []) if isinstance(photo, dict) and photo.get("name")]
    if not usable:
        return None

    def area(photo: Dict[str, Any]) -> int:
        return int(photo.get("widthPx") or 0) * int(photo.get("heightPx") or 0)

    wide = [photo for photo in usable if int(photo.get("widthPx") or 0) >= MIN_PHOTO_WIDTH]
    return max(wide or usable, key=area)


def fetch_and_store_photo(place_id: str, region: str, settings: Settings) -> Optional[str]:
    """Upload the best photo for ``place_id`` and return its public URL.

    Returns None when storage is not configured, the place has no photos, or
    any step fails. Never raises for provider or storage errors.
    """
    if not settings.supabase_url or not settings.supabase_service_key:
        return None
    try:
        details = google_places.get_place(place_id, settings.google_api_key, fields=["photos"])
        photo = pick_best_photo(details.get("photos"))
        if photo is None:
            logger.info("No photos for place_id=%s", place_id)
            return None
        data = google_places.download_photo(photo["name"], settings.google_api_key, max_width=MAX_PHOTO_WIDTH)
        if not data:
            return None
        return storage.upload(settings, data, storage_path(region, place_id))
    except (requests.RequestException, GooglePlacesError) as exc:
        logger.warning("Photo fetch failed for place_id=%s: %s", place_id, exc)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Photo upload failed for place_id=%s: %s", place_id, exc)
    return None
