"""Database helpers for the rag_places store."""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2 import extras, pool

from ragplaces.core.config import Settings
from ragplaces.etl.transform import to_place_row
from ragplaces.models import VerifiedPlace

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None

_COLUMNS = (
    "region",
    "name_local",
    "name_native",
    "category",
    "description",
    "tags",
    "price_range",
    "typical_duration_min",
    "recommended_time",
    "address",
    "lat",
    "lon",
    "opening_hours",
    "rating",
    "review_count",
    "google_place_id",
    "confidence",
    "image_url",
    "business_status",
)
_SELECT_COLUMNS = "id, " + ", ".join(_COLUMNS) + ", created_at"


def init_pool(settings: Settings, minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    if _connection_pool is None:
        raise RuntimeError("init_pool() must be called before using the database")
    conn = _connection_pool.getconn()
    try:
        yield conn
    finally:
        _connection_pool.putconn(conn)


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    params = {column: row.get(column) for column in _COLUMNS}
    params["tags"] = list(row.get("tags") or [])
    if not params["confidence"]:
        params["confidence"] = "verified"
    return params


_INSERT_COLUMNS = ",\n    ".join(_COLUMNS)
_INSERT_VALUES = ",\n    ".join(f"%({column})s" for column in _COLUMNS)

# Rows already present by (region, name_local) or google_place_id are left as they are.
_INSERT_IF_ABSENT = f"""
INSERT INTO rag_places (
    {_INSERT_COLUMNS},
    source,
    updated_at
) VALUES (
    {_INSERT_VALUES},
    'api',
    NOW()
)
ON CONFLICT DO NOTHING;
"""

_UPSERT_AUTO_VERIFIED = f"""
INSERT INTO rag_places (
    {_INSERT_COLUMNS},
    source,
    updated_at
) VALUES (
    {_INSERT_VALUES},
    'api',
    NOW()
)
ON CONFLICT (region, name_local) DO UPDATE SET
    name_native = EXCLUDED.name_native,
    category = EXCLUDED.category,
    address = EXCLUDED.address,
    lat = EXCLUDED.lat,
    lon = EXCLUDED.lon,
    opening_hours = COALESCE(EXCLUDED.opening_hours, rag_places.opening_hours),
    rating = EXCLUDED.rating,
    review_count = EXCLUDED.review_count,
    google_place_id = EXCLUDED.google_place_id,
    business_status = EXCLUDED.business_status,
    updated_at = NOW()
WHERE rag_places.confidence <> 'verified'
RETURNING id;
"""


def _validate(params: Dict[str, Any]) -> None:
    if not params["region"] or not params["name_local"]:
        raise ValueError("region and name_local are required for upsert")


def insert_verified_places(places: Iterable[VerifiedPlace]) -> int:
    """Insert verified places, skipping any that already exist. Returns rows inserted."""
    rows = [_prepare_params(to_place_row(place)) for place in places]
    for params in rows:
        _validate(params)
    if not rows:
        return 0

    inserted = 0
    with get_connection() as conn:
        with conn.cursor() as cur:
            for params in rows:
                cur.execute(_INSERT_IF_ABSENT, params)
                inserted += max(cur.rowcount, 0)
        conn.commit()
    logger.debug("Inserted %d of %d verified places", inserted, len(rows))
    return inserted


def upsert_auto_verified(place: VerifiedPlace) -> Optional[Any]:
    """Upsert an auto-verified place by (region, name_local).

    Returns the row id, or None when the conflicting row is human-verified and
    was therefore left untouched.
    """
    params = _prepare_params(to_place_row(place))
    _validate(params)
    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute(_UPSERT_AUTO_VERIFIED, params)
                returned = cur.fetchone()
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
    return returned[0] if returned else None


def _fetch_one(sql: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
    return dict(row) if row else None


def find_by_key(region: str, name_local: str) -> Optional[Dict[str, Any]]:
    return _fetch_one(
        f"SELECT {_SELECT_COLUMNS} FROM rag_places WHERE region = %(region)s AND name_local = %(name_local)s LIMIT 1;",
        {"region": region, "name_local": name_local},
    )


def find_by_place_id(google_place_id: str) -> Optional[Dict[str, Any]]:
    return _fetch_one(
        f"SELECT {_SELECT_COLUMNS} FROM rag_places WHERE google_place_id = %(google_place_id)s LIMIT 1;",
        {"google_place_id": google_place_id},
    )


def count_auto_verified_since(since: datetime) -> int:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT COUNT(*) FROM rag_places WHERE confidence = 'auto_verified' AND created_at >= %(since)s;",
                {"since": since},
            )
            (count,) = cur.fetchone()
    return int(count or 0)


def replace_region_category(region: str, category: str, places: Iterable[VerifiedPlace]) -> int:
    """Swap every row of ``region``/``category`` for ``places`` in one transaction.

    A failed insert rolls the delete back, so existing rows survive.
    """
    rows = [_prepare_params(to_place_row(place)) for place in places]
    for params in rows:
        _validate(params)

    inserted = 0
    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM rag_places WHERE region = %(region)s AND category = %(category)s;",
                    {"region": region, "category": category},
                )
                deleted = cur.rowcount
                for params in rows:
                    cur.execute(_INSERT_IF_ABSENT, params)
                    inserted += max(cur.rowcount, 0)
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
    logger.info("Replaced %d existing rows for %s/%s with %d", deleted, region, category, inserted)
    return inserted


def update_image_url(row_id: Any, image_url: str) -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE rag_places SET image_url = %(image_url)s, updated_at = NOW() WHERE id = %(id)s;",
                {"image_url": image_url, "id": row_id},
            )
        conn.commit()


def list_missing_images(region: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = "SELECT id, region, name_local, google_place_id FROM rag_places WHERE google_place_id IS NOT NULL AND image_url IS NULL"
    params: Dict[str, Any] = {}
    if region:
        sql += " AND region = %(region)s"
        params["region"] = region
    sql += " ORDER BY region"
    if limit:
        sql += " LIMIT %(limit)s"
        params["limit"] = limit
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql + ";", params)
            rows = cur.fetchall()
    return [dict(row) for row in rows]


# Only empty columns are filled; stored values win.
_FILL_DETAILS = """
UPDATE rag_places SET
    rating = COALESCE(rating, %(rating)s),
    review_count = COALESCE(review_count, %(review_count)s),
    opening_hours = COALESCE(opening_hours, %(opening_hours)s),
    updated_at = NOW()
WHERE id = %(id)s;
"""


def fill_missing_details(
    row_id: Any,
    rating: Optional[float] = None,
    review_count: Optional[int] = None,
    opening_hours: Optional[str] = None,
) -> bool:
    if rating is None and review_count is None and not opening_hours:
        return False
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                _FILL_DETAILS,
                {"id": row_id, "rating": rating, "review_count": review_count, "opening_hours": opening_hours or None},
            )
            updated = cur.rowcount
        conn.commit()
    return updated > 0


def list_missing_ratings(region: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = (
        "SELECT id, region, name_local, google_place_id FROM rag_places"
        " WHERE google_place_id IS NOT NULL AND (rating IS NULL OR review_count IS NULL)"
    )
    params: Dict[str, Any] = {}
    if region:
        sql += " AND region = %(region)s"
        params["region"] = region
    sql += " ORDER BY region"
    if limit:
        sql += " LIMIT %(limit)s"
        params["limit"] = limit
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql + ";", params)
            rows = cur.fetchall()
    return [dict(row) for row in rows]
