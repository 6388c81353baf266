import json

from ragplaces.core import rejects
from ragplaces.models import Candidate, RejectedCandidate, RejectReason


def _rejected(name_local, name_native=None, reason=RejectReason.NAME_MISMATCH, observed=None):
    return RejectedCandidate(Candidate(name_local=name_local, name_native=name_native, category="food"), reason, observed)


def test_write_rejected_creates_side_file(tmp_path):
    path = rejects.write_rejected(
        str(tmp_path / "out"),
        "fukuoka",
        "food",
        [_rejected("이치란", "一蘭", observed="一蘭 天神西通り店"), _rejected("없는집", reason=RejectReason.NO_RESULT)],
    )

    assert path.name == "rag-rejected-fukuoka-food.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data[0] == {
        "name_local": "이치란",
        "name_native": "一蘭",
        "reject_reason": "name_mismatch",
        "observed_name": "一蘭 天神西通り店",
    }
    assert data[1]["reject_reason"] == "no_result"


def test_write_rejected_skips_empty(tmp_path):
    assert rejects.write_rejected(str(tmp_path), "osaka", "food", []) is None
    assert list(tmp_path.iterdir()) == []


def test_load_rejected_accepts_legacy_keys(tmp_path):
    path = tmp_path / "rag-rejected-osaka-shop.json"
    path.write_text(
        json.dumps([{"name_ko": "파르코", "name_ja": "パルコ", "reject_reason": "name_mismatch", "_place_name": "PARCO"}, {}]),
        encoding="utf-8",
    )

    entries = rejects.load_rejected(path)

    assert entries == [
        {"name_local": "파르코", "name_native": "パルコ", "reject_reason": "name_mismatch", "observed_name": "PARCO"}
    ]


def test_load_rejected_tolerates_bad_files(tmp_path):
    broken = tmp_path / "rag-rejected-osaka-food.json"
    broken.write_text("{not json", encoding="utf-8")
    assert rejects.load_rejected(broken) == []


def test_list_side_files_filters_by_region(tmp_path):
    for name in ("rag-rejected-osaka-food.json", "rag-rejected-kyoto-spot.json", "notes.json"):
        (tmp_path / name).write_text("[]", encoding="utf-8")

    found = rejects.list_side_files(str(tmp_path), region="osaka")

    assert [(region, category) for region, category, _ in found] == [("osaka", "food")]
    assert len(rejects.list_side_files(str(tmp_path))) == 2
    assert rejects.list_side_files(str(tmp_path / "missing")) == []


def test_rewrite_side_file_removes_when_empty(tmp_path):
    path = tmp_path / "rag-rejected-osaka-food.json"
    path.write_text("[]", encoding="utf-8")

    rejects.rewrite_side_file(path, [{"name_local": "x"}])
    assert json.loads(path.read_text(encoding="utf-8")) == [{"name_local": "x"}]

    rejects.rewrite_side_file(path, [])
    assert not path.exists()


def test_priority_keywords_are_case_insensitive():
    assert rejects.has_priority_keyword("이치란 본점", None)
    assert rejects.has_priority_keyword("", "ICHIRAN Tenjin")
    assert rejects.has_priority_keyword("B-Speak", None)
    assert not rejects.has_priority_keyword("동네 식당", "近所の食堂")
