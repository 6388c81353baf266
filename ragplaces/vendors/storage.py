"""Supabase Storage uploads for place photos."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ragplaces.core.config import Settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _client(url: str, key: str) -> Client:
    return create_client(url, key)


def upload(settings: Settings, data: bytes, path: str, content_type: str = "image/jpeg") -> str:
    """Upload ``data`` to ``path`` in the configured bucket and return its public URL."""
    if not settings.supabase_url or not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for uploads")
    bucket = _client(settings.supabase_url, settings.supabase_service_key).storage.from_(settings.storage_bucket)
    bucket.upload(path, data, {"content-type": content_type, "upsert": "true"})
    public_url = bucket.get_public_url(path)
    logger.debug("Uploaded %d bytes to %s/%s", len(data), settings.storage_bucket, path)
    return public_url
