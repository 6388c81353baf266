from dataclasses import replace

import psycopg2

from ragplaces.jobs import photos as photos_job


def _rows():
    return [
        {"id": 1, "region": "osaka", "name_local": "a", "google_place_id": "p1"},
        {"id": 2, "region": "osaka", "name_local": "b", "google_place_id": "p2"},
        {"id": 3, "region": "osaka", "name_local": "c", "google_place_id": "p3"},
    ]


def test_run_backfill_counts_outcomes(monkeypatch, settings):
    updates = []
    monkeypatch.setattr(photos_job.db, "list_missing_images", lambda region=None, limit=None: _rows())
    monkeypatch.setattr(photos_job.time, "sleep", lambda seconds: None)
    monkeypatch.setattr(
        photos_job,
        "fetch_and_store_photo",
        lambda place_id, region, settings: None if place_id == "p2" else f"https://cdn/{place_id}.jpg",
    )

    def fake_update(row_id, url):
        if row_id == 3:
            raise psycopg2.OperationalError("connection lost")
        updates.append((row_id, url))

    monkeypatch.setattr(photos_job.db, "update_image_url", fake_update)

    stats = photos_job.run_backfill(settings, region="osaka", limit=3)

    assert (stats.scanned, stats.updated, stats.skipped, stats.failed) == (3, 1, 1, 1)
    assert updates == [(1, "https://cdn/p1.jpg")]


def test_run_backfill_dry_run_fetches_nothing(monkeypatch, settings):
    monkeypatch.setattr(photos_job.db, "list_missing_images", lambda region=None, limit=None: _rows())

    def unexpected(*args, **kwargs):
        raise AssertionError("dry run must not fetch")

    monkeypatch.setattr(photos_job, "fetch_and_store_photo", unexpected)

    stats = photos_job.run_backfill(settings, dry_run=True)

    assert stats.scanned == 3
    assert stats.updated == 0


def test_run_rating_backfill_fills_missing_counts(monkeypatch, settings):
    requested = []
    filled = []
    monkeypatch.setattr(photos_job.db, "list_missing_ratings", lambda region=None, limit=None: _rows())
    monkeypatch.setattr(photos_job.time, "sleep", lambda seconds: None)

    def fake_get_place(place_id, api_key, fields, language=None):
        requested.append((place_id, tuple(fields)))
        if place_id == "p3":
            raise photos_job.GooglePlacesError("NOT_FOUND")
        return {"rating": 4.5, "userRatingCount": 120} if place_id == "p1" else {}

    def fake_fill(row_id, rating=None, review_count=None, opening_hours=None):
        if rating is None and review_count is None:
            return False
        filled.append((row_id, rating, review_count))
        return True

    monkeypatch.setattr(photos_job.google_places, "get_place", fake_get_place)
    monkeypatch.setattr(photos_job.db, "fill_missing_details", fake_fill)

    stats = photos_job.run_rating_backfill(settings, region="osaka")

    assert (stats.scanned, stats.updated, stats.skipped, stats.failed) == (3, 1, 1, 1)
    assert filled == [(1, 4.5, 120)]
    assert requested[0] == ("p1", ("rating", "userRatingCount"))


def test_main_ratings_mode_needs_no_storage(monkeypatch, settings):
    calls = []
    monkeypatch.setattr(photos_job, "get_settings", lambda: replace(settings, supabase_url="", supabase_service_key=""))
    monkeypatch.setattr(photos_job.db, "init_pool", lambda settings: None)
    monkeypatch.setattr(
        photos_job,
        "run_rating_backfill",
        lambda settings, region=None, limit=None, dry_run=False: calls.append((region, limit, dry_run)),
    )

    photos_job.main(["--ratings", "--region", " Osaka ", "--limit", "5"])

    assert calls == [("osaka", 5, False)]
