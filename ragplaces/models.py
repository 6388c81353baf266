"""Core data models shared by the verification pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Confidence(str, Enum):
    VERIFIED = "verified"
    AUTO_VERIFIED = "auto_verified"
    REJECTED = "rejected"


class RejectReason(str, Enum):
    NO_RESULT = "no_result"
    NAME_MISMATCH = "name_mismatch"
    REQUEST_FAILED = "request_failed"
    API_ERROR = "api_error"
    UNKNOWN_REGION = "unknown_region"


@dataclass(slots=True)
class Candidate:
    """Unverified place mention proposed by the generator."""

    name_local: str
    category: str
    name_native: Optional[str] = None
    description: str = ""
    tags: List[str] = field(default_factory=list)
    price_range: Optional[str] = None
    typical_duration_min: Optional[int] = None
    recommended_time: Optional[str] = None

    @property
    def query_name(self) -> str:
        return (self.name_native or self.name_local or "").strip()

    @property
    def dedup_key(self) -> str:
        return (self.name_local or "").strip() or (self.name_native or "").strip()


@dataclass(slots=True)
class SearchResult:
    """One listing returned by the geographic search provider."""

    display_name: str
    place_id: Optional[str] = None
    formatted_address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    opening_hours: Optional[str] = None
    business_status: Optional[str] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass(slots=True)
class VerifiedPlace:
    region: str
    name_local: str
    category: str
    name_native: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    price_range: Optional[str] = None
    typical_duration_min: Optional[int] = None
    recommended_time: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    opening_hours: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    google_place_id: Optional[str] = None
    confidence: Confidence = Confidence.VERIFIED
    image_url: Optional[str] = None
    business_status: Optional[str] = None
    observed_name: Optional[str] = None


@dataclass(slots=True)
class RejectedCandidate:
    candidate: Candidate
    reason: RejectReason
    observed_name: Optional[str] = None
    error: Optional[str] = None

    def to_side_entry(self) -> Dict[str, Any]:
        return {
            "name_local": self.candidate.name_local,
            "name_native": self.candidate.name_native,
            "reject_reason": self.reason.value,
            "observed_name": self.observed_name,
        }


@dataclass(slots=True)
class PlaceMention:
    """Place named in a chat answer that is not in the store yet."""

    desc: str
    category: str
    region: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
