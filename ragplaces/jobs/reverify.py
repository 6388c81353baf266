"""Retry ``name_mismatch`` rejects with loose matching.

Only name mismatches are worth a second look: the provider did find a
listing, the names just did not line up under strict rules. Recovered
entries are inserted when absent and dropped from their side file.
"""

import argparse
import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import psycopg2

from ragplaces.core import db, rejects
from ragplaces.core.config import ConfigError, Settings, get_settings, require
from ragplaces.core.verifier import verify_candidate
from ragplaces.matching.similarity import MatchMode
from ragplaces.models import Candidate, RejectedCandidate, RejectReason

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 0.15
SAMPLE_SIZE = 50


@dataclass(slots=True)
class ReverifyStats:
    files: int = 0
    retried: int = 0
    recovered: int = 0
    inserted: int = 0
    already_stored: int = 0
    still_rejected: int = 0
    errors: List[str] = field(default_factory=list)


def _is_retryable(entry: Dict[str, Any], priority_only: bool) -> bool:
    if entry.get("reject_reason") != RejectReason.NAME_MISMATCH.value:
        return False
    if priority_only:
        return rejects.has_priority_keyword(entry.get("name_local"), entry.get("name_native"))
    return True


def _candidate(entry: Dict[str, Any], category: str) -> Candidate:
    return Candidate(name_local=entry["name_local"], category=category, name_native=entry.get("name_native"))


def reverify_file(
    region: str,
    category: str,
    entries: List[Dict[str, Any]],
    settings: Settings,
    stats: ReverifyStats,
    *,
    dry_run: bool = False,
    priority_only: bool = False,
) -> List[Dict[str, Any]]:
    """Retry the eligible entries and return the ones that are still rejected."""
    to_retry = [entry for entry in entries if _is_retryable(entry, priority_only)]
    if not to_retry:
        return entries
    logger.info("[%s/%s] retrying %d name_mismatch rejects", region, category, len(to_retry))

    recovered_ids = set()
    for index, entry in enumerate(to_retry, start=1):
        time.sleep(RETRY_DELAY_SECONDS)
        stats.retried += 1
        outcome = verify_candidate(_candidate(entry, category), region, settings, mode=MatchMode.LOOSE)
        if isinstance(outcome, RejectedCandidate):
            stats.still_rejected += 1
            logger.info(
                "  [%d/%d] still rejected: %s (%s) observed=%s",
                index,
                len(to_retry),
                entry["name_local"],
                entry.get("name_native") or "-",
                outcome.observed_name or "?",
            )
            continue

        logger.info("  [%d/%d] recovered: %s -> %s", index, len(to_retry), entry["name_local"], outcome.observed_name)
        stats.recovered += 1
        if dry_run:
            continue
        try:
            if db.find_by_key(region, outcome.name_local):
                stats.already_stored += 1
                logger.info("    already stored; skipping insert")
            else:
                stats.inserted += db.insert_verified_places([outcome])
        except psycopg2.Error as exc:
            stats.errors.append(f"{region}/{category}/{entry['name_local']}: {exc}")
            logger.error("    insert failed for %s: %s", entry["name_local"], exc)
            continue
        recovered_ids.add(id(entry))

    return [entry for entry in entries if id(entry) not in recovered_ids]


def run_reverify(
    settings: Settings,
    *,
    region: Optional[str] = None,
    dry_run: bool = False,
    priority_only: bool = False,
) -> ReverifyStats:
    stats = ReverifyStats()
    files = rejects.list_side_files(settings.output_dir, region)
    if not files:
        logger.info("No rejected files found in %s", settings.output_dir)
        return stats

    for file_region, category, path in files:
        entries = rejects.load_rejected(path)
        if not entries:
            continue
        stats.files += 1
        remaining = reverify_file(
            file_region,
            category,
            entries,
            settings,
            stats,
            dry_run=dry_run,
            priority_only=priority_only,
        )
        if not dry_run and len(remaining) != len(entries):
            rejects.rewrite_side_file(path, remaining)

    logger.info(
        "Reverify finished: retried=%d recovered=%d inserted=%d already_stored=%d still_rejected=%d",
        stats.retried,
        stats.recovered,
        stats.inserted,
        stats.already_stored,
        stats.still_rejected,
    )
    return stats


def priority_rejects(output_dir: str, region: Optional[str] = None) -> List[Dict[str, Any]]:
    """Priority-keyword name_mismatch rejects across every side file. No API calls."""
    found = []
    for file_region, category, path in rejects.list_side_files(output_dir, region):
        for entry in rejects.load_rejected(path):
            if _is_retryable(entry, priority_only=True):
                found.append({"region": file_region, "type": category, **entry})
    return found


def format_priority_report(items: Sequence[Dict[str, Any]]) -> List[str]:
    lines = [f"Priority name_mismatch rejects: {len(items)}"]
    counts = Counter(f"{item['region']}/{item['type']}" for item in items)
    if counts:
        lines.append("by region/type:")
        lines.extend(f"  {key}: {count}" for key, count in counts.most_common())
        lines.append(f"sample (up to {SAMPLE_SIZE}):")
        for index, item in enumerate(items[:SAMPLE_SIZE], start=1):
            lines.append(
                f"{index}. [{item['region']}/{item['type']}] {item['name_local']} ({item.get('name_native') or '-'})"
            )
        if len(items) > SAMPLE_SIZE:
            lines.append(f"... and {len(items) - SAMPLE_SIZE} more; use --json for the full list")
    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Re-verify name_mismatch rejects with loose matching")
    parser.add_argument("--region", help="Only process side files for this region")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Verify only; no writes")
    parser.add_argument(
        "--priority-only",
        dest="priority_only",
        action="store_true",
        help="Only retry rejects naming well-known brands or landmarks",
    )
    parser.add_argument(
        "--list-priority",
        dest="list_priority",
        action="store_true",
        help="List priority rejects without calling any API",
    )
    parser.add_argument("--json", dest="as_json", action="store_true", help="With --list-priority, print JSON")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)
    settings = get_settings()
    region = args.region.strip().lower() if args.region else None

    if args.list_priority:
        items = priority_rejects(settings.output_dir, region)
        if args.as_json:
            print(json.dumps(items, ensure_ascii=False, indent=2))
        else:
            print("\n".join(format_priority_report(items)))
        return

    try:
        require(settings, "google_api_key", *(() if args.dry_run else ("database_url",)))
    except ConfigError as exc:
        logger.error("%s", exc)
        raise SystemExit(2) from exc
    if not args.dry_run:
        db.init_pool(settings)
    run_reverify(settings, region=region, dry_run=args.dry_run, priority_only=args.priority_only)


if __name__ == "__main__":
    main()
