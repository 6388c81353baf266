"""Canonical forms of venue names used for comparison.

Names arrive in a mix of Latin, Hangul and Kana/Kanji, sometimes fullwidth,
sometimes with branch qualifiers or with an address where the name should be.
``normalize`` collapses those variants into one comparable string and
``core_name`` additionally drops category prefixes and branch suffixes.
"""

import re
import unicodedata
from typing import List

_SEPARATORS = re.compile(r"[\s・･·．.＆&＋+\-−–—‐/／|｜,，、。]")
_PARENTHETICAL = re.compile(r"[（(][^（()）]*[）)]|【[^【】]*】")
_POSTAL_FRAGMENT = re.compile(r"〒\d{3}[-−]?\d{4}.*")

BUSINESS_PREFIXES = re.compile(
    r"^(?:お食事処|食事処|レストラン|カフェ|喫茶|居酒屋|割烹料理|割烹|焼肉|焼鳥|焼き鳥|天麩羅処|天麩羅|天ぷら|"
    r"ラーメン|らーめん|うどん|そば|寿司|すし|鮨|ホテル|旅館|旅亭|民宿|ペンション|温泉付ゲストハウス|"
    r"ゲストハウス|道の駅|自家焙煎珈琲)\s*"
)
BUSINESS_SUFFIXES = re.compile(
    r"\s*(?:鹿児島中央駅店|中央駅店|博多駅店|金沢駅店|本社総本店|中洲本店|天神店|駅前店|中央店|空港店|"
    r"駅店|ビル店|横丁店|総本店|本店|支店|本舗|本館|新館|別館|本院|別院|店舗|七里ヶ浜|食品フロア|デパ地下|"
    r"フロア|公園|庭園|神社|寺院|寺|城|タワー|センター|会館|ホール|ミュージアム|美術館|博物館|水族館|"
    r"動物園|植物園|劇場|店)$"
)
CORE_NAME_MAX_CHARS = 10

_ALPHA_TOKEN = re.compile(r"[a-z0-9][a-z0-9\-_.]+[a-z0-9]")
_IDEOGRAPH = re.compile(r"[\u3005\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")


def to_halfwidth(value: str) -> str:
    """Fold fullwidth digits, Latin and punctuation (and the ideographic space) to ASCII."""
    return unicodedata.normalize("NFKC", value)


def katakana_to_hiragana(value: str) -> str:
    return "".join(chr(ord(ch) - 0x60) if "ァ" <= ch <= "ヶ" else ch for ch in value)


def _strip_parentheticals(value: str) -> str:
    # innermost pairs first, repeated until nothing is left to remove
    while True:
        stripped = _PARENTHETICAL.sub("", value)
        if stripped == value:
            return value
        value = stripped


def normalize(raw: str) -> str:
    """Canonical comparison form of a display name. Idempotent."""
    if not raw or not isinstance(raw, str):
        return ""
    text = to_halfwidth(raw).lower()
    text = _SEPARATORS.sub("", text)
    text = _strip_parentheticals(text)
    text = _POSTAL_FRAGMENT.sub("", text)
    return unicodedata.normalize("NFKC", katakana_to_hiragana(text))


def _core_name_once(value: str) -> str:
    text = _strip_parentheticals(to_halfwidth(value)).strip()
    text = _POSTAL_FRAGMENT.sub("", text).strip()
    text = BUSINESS_PREFIXES.sub("", text).strip()
    text = BUSINESS_SUFFIXES.sub("", text).strip()
    tokens = text.split()
    if len(tokens) >= 2:
        return "".join(tokens[:2])
    return text[:CORE_NAME_MAX_CHARS]


def core_name(raw: str) -> str:
    """Name with category prefix and branch/venue suffix removed, length capped."""
    if not raw or not isinstance(raw, str):
        return ""
    text = raw
    while True:
        shorter = _core_name_once(text)
        if shorter == text:
            return text
        text = shorter


def alpha_tokens(raw: str) -> List[str]:
    """Latin/digit tokens of at least three characters, with ``-``, ``_`` and ``.`` removed."""
    if not raw:
        return []
    text = to_halfwidth(raw).lower()
    tokens = (re.sub(r"[\-_.]", "", match) for match in _ALPHA_TOKEN.findall(text))
    return [token for token in tokens if len(token) >= 3]


def ideographs(raw: str) -> str:
    if not raw:
        return ""
    return "".join(_IDEOGRAPH.findall(raw))
