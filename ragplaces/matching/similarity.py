"""Decide whether two venue names denote the same place."""

import logging
from enum import Enum

from rapidfuzz.distance import Levenshtein

from ragplaces.matching.normalize import alpha_tokens, core_name, ideographs, normalize

logger = logging.getLogger(__name__)

LOOSE_RATIO = 0.45


class MatchMode(str, Enum):
    STRICT = "strict"
    LOOSE = "loose"


def _contains(a: str, b: str, min_len: int = 2) -> bool:
    return (len(a) >= min_len and a in b) or (len(b) >= min_len and b in a)


def _tokens_overlap(a: str, b: str) -> bool:
    tokens_b = alpha_tokens(b)
    if not tokens_b:
        return False
    for ta in alpha_tokens(a):
        for tb in tokens_b:
            if ta == tb:
                return True
            if len(ta) >= 4 and len(tb) >= 4 and (ta in tb or tb in ta):
                return True
    return False


def _ideographs_close(core_a: str, core_b: str) -> bool:
    ia, ib = ideographs(core_a), ideographs(core_b)
    if len(ia) < 2 or len(ib) < 2:
        return False
    if ia in ib or ib in ia:
        return True
    return Levenshtein.distance(ia, ib) <= max(1, int(min(len(ia), len(ib)) * 0.3))


def is_similar(a: str, b: str) -> bool:
    """Strict heuristic match, cheapest checks first."""
    na, nb = normalize(a), normalize(b)
    if not na and not nb:
        return bool(a and a.strip()) and a.strip() == (b or "").strip()
    if na == nb:
        return True
    if _contains(na, nb):
        return True
    if len(na) >= 2 and len(nb) >= 2 and (na.startswith(nb) or nb.startswith(na)):
        return True

    raw_core_a, raw_core_b = core_name(a), core_name(b)
    ca, cb = normalize(raw_core_a), normalize(raw_core_b)
    if len(ca) >= 2 and len(cb) >= 2 and (ca in cb or cb in ca):
        return True
    if (len(ca) >= 2 and ca in nb) or (len(cb) >= 2 and cb in na):
        return True

    shorter = min(len(na), len(nb))
    if shorter >= 3 and Levenshtein.distance(na, nb) <= max(2, int(shorter * 0.25)):
        return True
    if len(ca) >= 3 and len(cb) >= 3 and Levenshtein.distance(ca, cb) <= 2:
        return True

    if _tokens_overlap(a, b):
        return True
    return _ideographs_close(raw_core_a, raw_core_b)


def distance_ratio(a: str, b: str) -> float:
    """Edit distance of the normalized names divided by the longer length."""
    na, nb = normalize(a), normalize(b)
    longest = max(len(na), len(nb))
    if not longest:
        return 1.0
    return Levenshtein.distance(na, nb) / longest


def is_match(a: str, b: str, mode: MatchMode = MatchMode.STRICT) -> bool:
    if is_similar(a, b):
        return True
    if mode is MatchMode.LOOSE:
        na, nb = normalize(a), normalize(b)
        if max(len(na), len(nb)) >= 4 and distance_ratio(a, b) <= LOOSE_RATIO:
            logger.debug("Loose match accepted: %r ~ %r", a, b)
            return True
    return False
