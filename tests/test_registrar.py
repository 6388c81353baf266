from datetime import datetime, timezone

import psycopg2
import pytest

from ragplaces.core import registrar
from ragplaces.models import Candidate, Confidence, PlaceMention, RejectedCandidate, RejectReason, VerifiedPlace


class FakeStore:
    def __init__(self, today=0):
        self.today = today
        self.by_place_id = {}
        self.by_key = {}
        self.upserts = []
        self.image_updates = []
        self.detail_updates = []
        self.upsert_error = None
        self.next_id = 100

    def count_auto_verified_since(self, since):
        self.since = since
        return self.today

    def find_by_place_id(self, place_id):
        return self.by_place_id.get(place_id)

    def find_by_key(self, region, name_local):
        return self.by_key.get((region, name_local))

    def upsert_auto_verified(self, place):
        if self.upsert_error is not None:
            raise self.upsert_error
        existing = self.by_key.get((place.region, place.name_local))
        if existing and existing["confidence"] == "verified":
            return None
        self.upserts.append(place)
        self.next_id += 1
        return self.next_id

    def update_image_url(self, row_id, url):
        self.image_updates.append((row_id, url))

    def fill_missing_details(self, row_id, rating=None, review_count=None, opening_hours=None):
        self.detail_updates.append((row_id, rating, review_count, opening_hours))
        return True


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    names = (
        "count_auto_verified_since",
        "find_by_place_id",
        "find_by_key",
        "upsert_auto_verified",
        "update_image_url",
        "fill_missing_details",
    )
    for name in names:
        monkeypatch.setattr(registrar.db, name, getattr(fake, name))
    monkeypatch.setattr(registrar.time, "sleep", lambda seconds: None)
    monkeypatch.setattr(
        registrar.google_places,
        "get_place",
        lambda place_id, api_key, fields, language=None: {"rating": 4.6, "userRatingCount": 999},
    )
    monkeypatch.setattr(registrar, "fetch_and_store_photo", lambda place_id, region, settings: f"https://cdn/{region}/{place_id}.jpg")
    return fake


@pytest.fixture
def verify_calls(monkeypatch):
    calls = []

    def fake_verify(candidate, region_key, settings, mode=None, language="ja"):
        calls.append((candidate.name_local, region_key, language))
        return VerifiedPlace(
            region=region_key,
            name_local=candidate.name_local,
            category=candidate.category,
            lat=33.59,
            lon=130.40,
            google_place_id=f"pid-{candidate.name_local}",
            observed_name=f"{candidate.name_local} 本店",
        )

    monkeypatch.setattr(registrar, "verify_candidate", fake_verify)
    return calls


def _mentions(count):
    return [PlaceMention(desc=f"place-{index}", category="food", region="후쿠오카") for index in range(count)]


def test_quota_truncates_batch_before_any_external_call(store, verify_calls, settings):
    store.today = 48

    summary = registrar.register_places(_mentions(10), "후쿠오카", settings)

    assert summary.received == 10
    assert summary.attempted == 2
    assert summary.daily_limit_reached is True
    assert [call[0] for call in verify_calls] == ["place-0", "place-1"]
    assert summary.registered == 2


def test_quota_exhausted_makes_no_calls(store, verify_calls, settings):
    store.today = 60

    summary = registrar.register_places(_mentions(3), None, settings)

    assert summary.attempted == 0
    assert verify_calls == []


def test_quota_counts_from_start_of_utc_day(store, verify_calls, settings):
    registrar.register_places([], None, settings, now=datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc))
    assert store.since == datetime(2026, 10, 19, tzinfo=timezone.utc)


def test_registers_auto_verified_with_details_and_photo(store, verify_calls, settings):
    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], "후쿠오카", settings)

    outcome = summary.outcomes[0]
    assert outcome.status == "registered"
    assert outcome.region == "fukuoka"
    placed = store.upserts[0]
    assert placed.confidence is Confidence.AUTO_VERIFIED
    assert placed.rating == 4.6
    assert placed.review_count == 999
    assert placed.name_native == "이치란 本店"
    assert store.image_updates == [(101, "https://cdn/fukuoka/pid-이치란.jpg")]


def test_verified_row_is_never_overwritten(store, verify_calls, settings):
    store.by_key[("fukuoka", "이치란")] = {
        "id": 7,
        "region": "fukuoka",
        "confidence": "verified",
        "google_place_id": "other",
        "image_url": None,
    }

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], None, settings)

    assert summary.outcomes[0].status == "kept_verified"
    assert summary.registered == 0
    assert store.upserts == []
    assert store.image_updates == [(7, "https://cdn/fukuoka/other.jpg")]
    assert store.detail_updates == [(7, 4.6, 999, None)]


def test_existing_place_id_is_reused(store, verify_calls, settings):
    store.by_place_id["pid-이치란"] = {
        "id": 3,
        "region": "fukuoka",
        "google_place_id": "pid-이치란",
        "image_url": "https://cdn/already.jpg",
    }

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], None, settings)

    assert summary.outcomes[0].status == "existing"
    assert summary.outcomes[0].image_url == "https://cdn/already.jpg"
    assert store.upserts == []
    assert store.image_updates == []
    assert store.detail_updates == [(3, 4.6, 999, None)]


def test_stored_mention_skips_search_and_fills_gaps(store, verify_calls, monkeypatch, settings):
    store.by_key[("fukuoka", "이치란")] = {
        "id": 11,
        "region": "fukuoka",
        "confidence": "verified",
        "google_place_id": "pid-stored",
        "rating": None,
        "review_count": None,
        "opening_hours": None,
        "image_url": "https://cdn/stored.jpg",
    }
    requested = []

    def fake_get_place(place_id, api_key, fields, language=None):
        requested.append((place_id, list(fields), language))
        return {
            "rating": 4.1,
            "userRatingCount": 52,
            "regularOpeningHours": {"weekdayDescriptions": ["월요일: 11:00~22:00"]},
        }

    monkeypatch.setattr(registrar.google_places, "get_place", fake_get_place)

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], "후쿠오카", settings)

    outcome = summary.outcomes[0]
    assert outcome.status == "existing"
    assert outcome.place_id == "pid-stored"
    assert outcome.image_url == "https://cdn/stored.jpg"
    assert verify_calls == []
    assert requested == [("pid-stored", ["rating", "userRatingCount", "regularOpeningHours"], "ko")]
    assert store.detail_updates == [(11, 4.1, 52, "월요일: 11:00~22:00")]
    assert store.image_updates == []


def test_complete_stored_row_makes_no_details_call(store, verify_calls, monkeypatch, settings):
    store.by_key[("fukuoka", "이치란")] = {
        "id": 12,
        "region": "fukuoka",
        "google_place_id": "pid-stored",
        "rating": 4.4,
        "review_count": 80,
        "opening_hours": "24시간 영업",
        "image_url": "https://cdn/stored.jpg",
    }

    def unexpected(*args, **kwargs):
        raise AssertionError("details should not be requested")

    monkeypatch.setattr(registrar.google_places, "get_place", unexpected)

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], "후쿠오카", settings)

    assert summary.outcomes[0].status == "existing"
    assert store.detail_updates == []
    assert verify_calls == []


def test_stored_row_without_place_id_is_verified(store, verify_calls, settings):
    store.by_key[("fukuoka", "이치란")] = {
        "id": 13,
        "region": "fukuoka",
        "confidence": "auto_verified",
        "google_place_id": None,
    }

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], "후쿠오카", settings)

    assert verify_calls == [("이치란", "fukuoka", "ja")]
    assert summary.outcomes[0].status == "registered"


def test_details_failure_keeps_stored_row(store, verify_calls, monkeypatch, settings):
    store.by_key[("fukuoka", "이치란")] = {"id": 14, "region": "fukuoka", "google_place_id": "pid-stored", "image_url": "x"}

    def broken(place_id, api_key, fields, language=None):
        raise registrar.GooglePlacesError("PERMISSION_DENIED")

    monkeypatch.setattr(registrar.google_places, "get_place", broken)

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], "후쿠오카", settings)

    assert summary.outcomes[0].status == "existing"
    assert store.detail_updates == []


def test_mismatch_retries_alternate_language(store, monkeypatch, settings):
    languages = []

    def fake_verify(candidate, region_key, settings, mode=None, language="ja"):
        languages.append(language)
        return RejectedCandidate(candidate, RejectReason.NAME_MISMATCH, observed_name="別の店")

    monkeypatch.setattr(registrar, "verify_candidate", fake_verify)

    summary = registrar.register_places([PlaceMention(desc="이치란", category="food")], None, settings)

    assert languages == ["ja", "ko"]
    assert summary.outcomes[0].status == "rejected"
    assert summary.outcomes[0].reason == "name_mismatch"


def test_match_far_from_hint_is_rejected(store, monkeypatch, settings):
    def fake_verify(candidate, region_key, settings, mode=None, language="ja"):
        return VerifiedPlace(region=region_key, name_local=candidate.name_local, category="stay", lat=36.35, lon=127.38)

    monkeypatch.setattr(registrar, "verify_candidate", fake_verify)

    summary = registrar.register_places([PlaceMention(desc="호텔", category="stay")], "서울", settings)

    assert summary.outcomes[0].status == "rejected"
    assert summary.outcomes[0].reason == "too_far_from_hint"
    assert store.upserts == []


def test_one_failure_does_not_stop_the_batch(store, verify_calls, settings):
    store.upsert_error = psycopg2.IntegrityError("duplicate google_place_id")

    summary = registrar.register_places(_mentions(2), None, settings)

    assert [outcome.status for outcome in summary.outcomes] == ["failed", "failed"]
    assert len(verify_calls) == 2


def test_resolve_region_precedence(settings):
    assert registrar.resolve_region(PlaceMention("x", "food", region="교토", lat=33.59, lon=130.4), None, settings) == "fukuoka"
    assert registrar.resolve_region(PlaceMention("x", "food", region="교토"), "오사카", settings) == "kyoto"
    assert registrar.resolve_region(PlaceMention("x", "food"), "오사카 2박", settings) == "osaka"
    assert registrar.resolve_region(PlaceMention("x", "food"), None, settings) == "osaka"
    assert registrar.resolve_region(PlaceMention("x", "food", lat=0.0, lon=0.0), "도쿄", settings) == "tokyo"


def test_summary_as_dict(store, verify_calls, settings):
    data = registrar.register_places(_mentions(1), None, settings).as_dict()
    assert data["registered"] == 1
    assert data["outcomes"][0]["desc"] == "place-0"
