"""Known regions, their reference coordinates and label lookups."""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

CATEGORIES = ("food", "spot", "shop", "stay")

SEARCH_RADIUS_M = 50000
NEAREST_REGION_MAX_KM = 50.0
HINT_MAX_DISTANCE_KM = 100.0
_EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Region:
    key: str
    center: Tuple[float, float]
    label: str
    name_native: str
    tier: Optional[int] = None


_REGION_ROWS = [
    # tier 1
    ("osaka", (34.69, 135.5), "오사카", "大阪", 1),
    ("tokyo", (35.68, 139.69), "도쿄", "東京", 1),
    ("kyoto", (35.01, 135.77), "교토", "京都", 1),
    # tier 2
    ("fukuoka", (33.59, 130.4), "후쿠오카", "福岡", 2),
    ("okinawa", (26.33, 127.8), "오키나와", "沖縄", 2),
    ("sapporo", (43.06, 141.35), "삿포로", "札幌", 2),
    ("kobe", (34.69, 135.2), "고베", "神戸", 2),
    ("nara", (34.69, 135.8), "나라", "奈良", 2),
    # tier 3
    ("nagoya", (35.18, 136.91), "나고야", "名古屋", 3),
    ("hiroshima", (34.4, 132.46), "히로시마", "広島", 3),
    ("hakone", (35.23, 139.11), "하코네", "箱根", 3),
    ("yokohama", (35.44, 139.64), "요코하마", "横浜", 3),
    ("kanazawa", (36.56, 136.66), "가나자와", "金沢", 3),
    ("beppu", (33.28, 131.49), "벳푸", "別府", 3),
    ("kamakura", (35.32, 139.55), "가마쿠라", "鎌倉", 3),
    ("nikko", (36.75, 139.6), "닛코", "日光", 3),
    # tier 4
    ("kumamoto", (32.79, 130.74), "구마모토", "熊本", 4),
    ("nagasaki", (32.75, 129.88), "나가사키", "長崎", 4),
    ("kagoshima", (31.6, 130.56), "가고시마", "鹿児島", 4),
    ("matsuyama", (33.84, 132.77), "마츠야마", "松山", 4),
    ("takamatsu", (34.34, 134.05), "타카마츠", "高松", 4),
    ("takayama", (36.14, 137.25), "다카야마", "高山", 4),
    ("hakodate", (41.77, 140.73), "하코다테", "函館", 4),
    ("sendai", (38.27, 140.87), "센다이", "仙台", 4),
    ("kawaguchiko", (35.5, 138.76), "카와구치코", "河口湖", 4),
    # tier 5
    ("aso", (32.88, 131.1), "아소", "阿蘇", 5),
    ("yufuin", (33.27, 131.37), "유후인", "由布院", 5),
    ("miyajima", (34.3, 132.32), "미야지마", "宮島", 5),
    ("naoshima", (34.46, 133.99), "나오시마", "直島", 5),
    ("shirakawago", (36.26, 136.91), "시라카와고", "白川郷", 5),
    ("otaru", (43.19, 141.0), "오타루", "小樽", 5),
    ("noboribetsu", (42.46, 141.17), "노보리베츠", "登別", 5),
    ("atami", (35.1, 139.07), "아타미", "熱海", 5),
    ("miyazaki", (31.91, 131.42), "미야자키", "宮崎", 5),
    ("takachiho", (32.72, 131.31), "타카치호", "高千穂", 5),
    ("shimoda", (34.68, 138.95), "시모다", "下田", 5),
    ("kinosaki", (35.63, 134.81), "기노사키", "城崎", 5),
    ("ibusuki", (31.23, 130.64), "이부스키", "指宿", 5),
    # auto-registration only
    ("seoul", (37.57, 126.98), "서울", "서울", None),
    ("busan", (35.18, 129.08), "부산", "부산", None),
    ("jeju", (33.5, 126.53), "제주", "제주", None),
    ("taipei", (25.03, 121.57), "타이베이", "台北", None),
    ("bangkok", (13.76, 100.5), "방콕", "Bangkok", None),
    ("singapore", (1.35, 103.82), "싱가포르", "Singapore", None),
    ("hongkong", (22.32, 114.17), "홍콩", "Hong Kong", None),
    ("danang", (16.05, 108.22), "다낭", "Da Nang", None),
    ("hanoi", (21.03, 105.85), "하노이", "Hanoi", None),
]

REGIONS: Dict[str, Region] = {row[0]: Region(*row) for row in _REGION_ROWS}

TIER_TARGETS: Dict[int, Dict[str, int]] = {
    1: {"food": 100, "spot": 50, "shop": 30, "stay": 20},
    2: {"food": 50, "spot": 25, "shop": 15, "stay": 10},
    3: {"food": 25, "spot": 15, "shop": 10, "stay": 5},
    4: {"food": 25, "spot": 15, "shop": 10, "stay": 5},
    5: {"food": 15, "spot": 10, "shop": 5, "stay": 3},
}
DEFAULT_TARGET = 30

_LABEL_ALIASES = {
    "하카타": "fukuoka",
    "나하": "okinawa",
    "제주도": "jeju",
    "대만": "taipei",
    "태국": "bangkok",
    "베트남": "hanoi",
    "가와구치코": "kawaguchiko",
    "아소산": "aso",
}


def _build_label_index() -> Dict[str, str]:
    index: Dict[str, str] = {}
    for region in REGIONS.values():
        for label in (region.key, region.label, region.name_native):
            index.setdefault(label.lower(), region.key)
    index.update(_LABEL_ALIASES)
    return index


LABEL_TO_REGION = _build_label_index()


def get_region(key: Optional[str]) -> Optional[Region]:
    if not key:
        return None
    return REGIONS.get(key.strip().lower())


def regions_in_tier(tier: int) -> List[str]:
    return [key for key, region in REGIONS.items() if region.tier == tier]


def target_count(region_key: str, category: str) -> int:
    region = REGIONS[region_key]
    return TIER_TARGETS.get(region.tier or 0, {}).get(category, DEFAULT_TARGET)


def geo_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two coordinates in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return _EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def nearest_region(
    lat: Optional[float],
    lon: Optional[float],
    max_km: Optional[float] = NEAREST_REGION_MAX_KM,
) -> Optional[str]:
    """Closest region centroid, or None when it lies further than ``max_km``."""
    if lat is None or lon is None:
        return None
    best = None
    best_dist = math.inf
    for key, region in REGIONS.items():
        dist = geo_distance_km(lat, lon, region.center[0], region.center[1])
        if dist < best_dist:
            best, best_dist = key, dist
    if max_km is not None and best_dist > max_km:
        return None
    return best


def region_from_label(label: Optional[str]) -> Optional[str]:
    """Map a free-form destination label ("후쿠오카 3박", "Osaka") to a region key."""
    if not label or not label.strip():
        return None
    lower = label.strip().lower()
    if lower in LABEL_TO_REGION:
        return LABEL_TO_REGION[lower]
    # longest label first so "가와구치코" wins over shorter overlaps
    for known in sorted(LABEL_TO_REGION, key=len, reverse=True):
        if known in lower:
            return LABEL_TO_REGION[known]
    return None
