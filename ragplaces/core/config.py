"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


class UnknownRegionError(ConfigError):
    """Raised when a job names a region outside the registry."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    gemini_api_key: str
    database_url: str
    supabase_url: str = ""
    supabase_service_key: str = ""
    storage_bucket: str = "images"
    output_dir: str = "output"
    gemini_model: str = "gemini-2.5-flash"
    daily_auto_limit: int = 50
    default_region: str = "osaka"
    worker_port: int = 9000


_ENV_NAMES = {
    "google_api_key": "GOOGLE_PLACES_API_KEY",
    "gemini_api_key": "GEMINI_API_KEY",
    "database_url": "DATABASE_URL",
    "supabase_url": "SUPABASE_URL",
    "supabase_service_key": "SUPABASE_SERVICE_ROLE_KEY",
}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_PLACES_API_KEY") or os.getenv("GOOGLE_API_KEY", "")
    gemini_api_key = os.getenv("GEMINI_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    supabase_url = os.getenv("SUPABASE_URL", "")
    supabase_service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    storage_bucket = os.getenv("RAG_STORAGE_BUCKET", "images")
    output_dir = os.getenv("RAG_OUTPUT_DIR", "output")
    gemini_model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    daily_auto_limit = int(os.getenv("RAG_DAILY_AUTO_LIMIT", "50"))
    default_region = os.getenv("RAG_DEFAULT_REGION", "osaka").strip().lower()
    worker_port = int(os.getenv("WORKER_PORT", "9000"))

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Places requests will fail.")
    if not gemini_api_key:
        logger.warning("GEMINI_API_KEY is not configured; candidate generation will fail.")
    if not supabase_url or not supabase_service_key:
        logger.warning("Supabase storage is not configured; photo uploads will be skipped.")

    return Settings(
        google_api_key=google_api_key,
        gemini_api_key=gemini_api_key,
        database_url=database_url,
        supabase_url=supabase_url,
        supabase_service_key=supabase_service_key,
        storage_bucket=storage_bucket,
        output_dir=output_dir,
        gemini_model=gemini_model,
        daily_auto_limit=daily_auto_limit,
        default_region=default_region,
        worker_port=worker_port,
    )


def require(settings: Settings, *fields: str) -> Settings:
    """Raise ConfigError listing every field in ``fields`` that is empty."""
    missing = [_ENV_NAMES.get(name, name.upper()) for name in fields if not getattr(settings, name, None)]
    if missing:
        raise ConfigError(f"Missing configuration: {', '.join(missing)}")
    return settings
