"""Side files holding rejected candidates, keyed by region and category."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ragplaces.models import RejectedCandidate

logger = logging.getLogger(__name__)

_FILE_PATTERN = re.compile(r"^rag-rejected-(\w+)-(\w+)\.json$")

# Well-known brands and landmarks whose rejects are worth a loose-match retry.
PRIORITY_KEYWORDS = (
    "이치란", "一蘭", "ichiran",
    "캐널시티", "キャナルシティ", "canal city",
    "파르코", "パルコ", "parco",
    "파블로", "パブロ", "pablo",
    "그램", "グラム", "gram",
    "리쿠로", "りくろー", "rikuro",
    "도톤보리", "道頓堀", "dotonbori",
    "왕장", "王将", "오쇼",
    "나카스", "中洲", "nakasu",
    "잇소우", "一双", "isso",
    "신신", "shinshin",
    "돈키호테", "ドンキホーテ", "don quijote",
    "고토켄", "五島軒", "gotoken",
    "스나플스", "スナッフルス", "snaffles",
    "메이지칸", "明治館", "meijikan",
    "이쓰쿠시마", "厳島", "itsukushima", "미야지마",
    "겐로쿠엔", "兼六園", "kenrokuen",
    "가네모리", "金森", "kanemori",
    "하코다테", "函館", "hakodate",
    "jr博多", "jr 하카타", "jr hakata",
    "키테", "kitte", "キッテ",
    "무지", "無印", "muji",
    "로프트", "ロフト", "loft",
    "ヨドバシ", "요도바시", "yodobashi",
    "큐슈", "九州", "kyushu",
    "삿포로ビール", "삿포로 맥주", "sapporo beer",
    "시로야마", "城山", "shiroyama",
    "그랜드 하이어트", "grand hyatt", "hyatt",
    "b-speak", "비스피크",
    "snoopy", "스누피",
    "지브리", "ジブリ", "ghibli", "どんぐり",
    "라멘", "らーめん", "라면",
    "후쿠짱", "ふくちゃん",
    "稚加榮", "치카에",
    "오오야마", "おおやま", "모츠나베",
)


def has_priority_keyword(name_local: Optional[str], name_native: Optional[str]) -> bool:
    combined = f"{name_local or ''} {name_native or ''}".lower()
    return any(keyword in combined for keyword in PRIORITY_KEYWORDS)


def side_file_path(output_dir: str, region: str, category: str) -> Path:
    return Path(output_dir) / f"rag-rejected-{region}-{category}.json"


def _dump(path: Path, entries: Sequence[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(list(entries), fh, ensure_ascii=False, indent=2)


def write_rejected(
    output_dir: str,
    region: str,
    category: str,
    rejected: Iterable[RejectedCandidate],
) -> Optional[Path]:
    entries = [item.to_side_entry() for item in rejected]
    if not entries:
        return None
    path = side_file_path(output_dir, region, category)
    _dump(path, entries)
    logger.info("Wrote %d rejected candidates to %s", len(entries), path)
    return path


def _coerce_entry(item: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(item, dict):
        return None
    # older side files used the generator's field names
    name_local = item.get("name_local") or item.get("name_ko")
    name_native = item.get("name_native") or item.get("name_ja")
    if not name_local and not name_native:
        return None
    return {
        "name_local": name_local or name_native,
        "name_native": name_native,
        "reject_reason": item.get("reject_reason"),
        "observed_name": item.get("observed_name") or item.get("_place_name"),
    }


def load_rejected(path: Path) -> List[Dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Skipping unreadable side file %s: %s", path, exc)
        return []
    if not isinstance(data, list):
        logger.warning("Skipping side file %s: expected a JSON array", path)
        return []
    return [entry for entry in map(_coerce_entry, data) if entry]


def list_side_files(output_dir: str, region: Optional[str] = None) -> List[Tuple[str, str, Path]]:
    directory = Path(output_dir)
    if not directory.is_dir():
        return []
    found = []
    for path in sorted(directory.iterdir()):
        match = _FILE_PATTERN.match(path.name)
        if not match:
            continue
        file_region, category = match.groups()
        if region and file_region != region:
            continue
        found.append((file_region, category, path))
    return found


def rewrite_side_file(path: Path, remaining: Sequence[Dict[str, Any]]) -> None:
    """Persist what is still rejected; drop the file once nothing is left."""
    if remaining:
        _dump(path, remaining)
    elif path.exists():
        path.unlink()
        logger.info("All entries in %s recovered; removed side file", path)
