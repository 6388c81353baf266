"""CLI job that seeds verified places for region/category pairs.

Each job asks the generator for candidates, checks every candidate against
the Places provider, writes rejects to a side file and stores the verified
ones. Batch runs (``--tier`` or ``--all``) record a failed job and move on.
"""

import argparse
import math
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import psycopg2
import requests

from ragplaces.core import db, rejects
from ragplaces.core.backoff import DEFAULT_POLICY, BackoffPolicy
from ragplaces.core.config import ConfigError, Settings, UnknownRegionError, get_settings, require
from ragplaces.core.regions import CATEGORIES, REGIONS, get_region, regions_in_tier, target_count
from ragplaces.core.verifier import verify_candidate
from ragplaces.models import Candidate, RejectedCandidate, VerifiedPlace
from ragplaces.vendors import gemini
from ragplaces.vendors.gemini import GeminiError, RateLimitedError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 25
CHUNK_DELAY_SECONDS = 0.8
CANDIDATE_DELAY_SECONDS = 0.15
JOB_DELAY_SECONDS = 1.5

REJECT_REASON_LABELS = {
    "no_result": "no Places result",
    "name_mismatch": "name mismatch (Places listing differs from candidate)",
    "request_failed": "request failed",
    "api_error": "API error",
    "unknown_region": "unknown region",
}


class JobState(str, Enum):
    GENERATING = "generating"
    VERIFYING = "verifying"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class JobResult:
    region: str
    category: str
    state: JobState = JobState.GENERATING
    candidates: int = 0
    verified: List[VerifiedPlace] = field(default_factory=list)
    rejected: List[RejectedCandidate] = field(default_factory=list)
    inserted: int = 0
    side_file: Optional[Path] = None
    error: Optional[str] = None

    @property
    def verified_count(self) -> int:
        return len(self.verified)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


@dataclass(slots=True)
class SeedReport:
    results: List[JobResult] = field(default_factory=list)

    @property
    def completed(self) -> List[JobResult]:
        return [r for r in self.results if r.state is JobState.DONE]

    @property
    def failures(self) -> List[JobResult]:
        return [r for r in self.results if r.state is JobState.FAILED]

    @property
    def total_candidates(self) -> int:
        return sum(r.candidates for r in self.completed)

    @property
    def total_verified(self) -> int:
        return sum(r.verified_count for r in self.completed)

    @property
    def total_rejected(self) -> int:
        return sum(r.rejected_count for r in self.completed)

    def by_reason(self) -> Counter:
        return Counter(item.reason.value for r in self.completed for item in r.rejected)

    def by_region(self) -> Dict[str, Dict[str, int]]:
        table: Dict[str, Dict[str, int]] = {}
        for r in self.completed:
            row = table.setdefault(r.region, {category: 0 for category in CATEGORIES})
            row[r.category] = r.verified_count
        return table

    def format_lines(self) -> List[str]:
        pct = round(self.total_verified * 100 / self.total_candidates) if self.total_candidates else 0
        lines = [
            "=== Seed finished ===",
            f"candidates: {self.total_candidates}",
            f"verified:   {self.total_verified} ({pct}%)",
            f"rejected:   {self.total_rejected} ({100 - pct}%)",
        ]
        reasons = self.by_reason()
        if reasons:
            lines.append("rejected by reason:")
            for reason, count in reasons.most_common():
                lines.append(f"  {REJECT_REASON_LABELS.get(reason, reason)}: {count}")
        table = self.by_region()
        if table:
            lines.append("verified by region:")
            for region in REGIONS:
                row = table.get(region)
                if row is None:
                    continue
                cells = " ".join(f"{category}:{row[category]:>3}" for category in CATEGORIES)
                lines.append(f"  {region:<12} {cells}  = {sum(row.values())}")
        with_rejects = [r for r in self.completed if r.rejected]
        if with_rejects:
            lines.append("jobs with rejects:")
            for r in with_rejects:
                lines.append(f"  {r.region}/{r.category}: {r.rejected_count} -> {r.side_file or '-'}")
        if self.failures:
            lines.append("failed jobs:")
            for r in self.failures:
                lines.append(f"  {r.region}/{r.category} - {r.error}")
        return lines


def _generate_chunk(
    client,
    settings: Settings,
    region_key: str,
    category: str,
    count: int,
    policy: BackoffPolicy,
) -> List[Candidate]:
    region = REGIONS[region_key]
    attempt = 0
    while True:
        try:
            return gemini.generate(client, settings.gemini_model, region_key, category, count, region.name_native)
        except RateLimitedError as exc:
            if not policy.should_retry(attempt):
                raise
            wait = policy.delay(attempt, exc.retry_after)
            attempt += 1
            logger.warning(
                "Generator rate limited; retrying in %.0fs (%d/%d)", wait, attempt, policy.max_retries
            )
            time.sleep(wait)


def generate_candidates(
    client,
    settings: Settings,
    region_key: str,
    category: str,
    target: int,
    policy: BackoffPolicy = DEFAULT_POLICY,
) -> List[Candidate]:
    """Collect up to ``target`` distinct candidates in chunks of CHUNK_SIZE."""
    if target <= 0:
        return []
    chunks = math.ceil(target / CHUNK_SIZE)
    seen = set()
    merged: List[Candidate] = []
    for index in range(chunks):
        if len(merged) >= target:
            break
        want = min(CHUNK_SIZE, target - len(merged))
        chunk = _generate_chunk(client, settings, region_key, category, want, policy)
        logger.info("Generator chunk %d/%d returned %d candidates", index + 1, chunks, len(chunk))
        for candidate in chunk:
            key = candidate.dedup_key
            if key and key not in seen:
                seen.add(key)
                merged.append(candidate)
                if len(merged) >= target:
                    break
        if index < chunks - 1 and len(merged) < target:
            time.sleep(CHUNK_DELAY_SECONDS)
    return merged[:target]


def _progress_interval(total: int) -> int:
    if total <= 20:
        return 5
    if total <= 60:
        return 10
    return 20


def verify_candidates(
    candidates: Sequence[Candidate],
    region_key: str,
    settings: Settings,
) -> Tuple[List[VerifiedPlace], List[RejectedCandidate]]:
    verified: List[VerifiedPlace] = []
    rejected: List[RejectedCandidate] = []
    interval = _progress_interval(len(candidates))
    for index, candidate in enumerate(candidates, start=1):
        outcome = verify_candidate(candidate, region_key, settings)
        if isinstance(outcome, RejectedCandidate):
            rejected.append(outcome)
        else:
            verified.append(outcome)
        if index % interval == 0 or index == len(candidates):
            logger.info(
                "[%s] verified %d/%d (ok=%d, rejected=%d)",
                region_key,
                index,
                len(candidates),
                len(verified),
                len(rejected),
            )
        time.sleep(CANDIDATE_DELAY_SECONDS)
    return verified, rejected


def run_job(
    region_key: str,
    category: str,
    settings: Settings,
    client,
    *,
    replace: bool = False,
    dry_run: bool = False,
    limit: Optional[int] = None,
    policy: BackoffPolicy = DEFAULT_POLICY,
) -> JobResult:
    if get_region(region_key) is None:
        raise UnknownRegionError(f"Unknown region: {region_key}")
    if category not in CATEGORIES:
        raise ConfigError(f"Unknown type: {category} (use one of {', '.join(CATEGORIES)})")

    result = JobResult(region=region_key, category=category)
    try:
        target = limit if limit is not None else target_count(region_key, category)
        candidates = generate_candidates(client, settings, region_key, category, target, policy)
        result.candidates = len(candidates)
        logger.info("[%s/%s] %d candidates generated; verifying", region_key, category, len(candidates))

        result.state = JobState.VERIFYING
        result.verified, result.rejected = verify_candidates(candidates, region_key, settings)

        result.state = JobState.REPORTING
        for item in result.rejected:
            logger.info(
                "  rejected %s (%s) [%s] %s",
                item.candidate.name_local,
                item.candidate.name_native or "-",
                item.reason.value,
                item.error or "",
            )
        result.side_file = rejects.write_rejected(settings.output_dir, region_key, category, result.rejected)

        if not dry_run and result.verified:
            if replace:
                result.inserted = db.replace_region_category(region_key, category, result.verified)
            else:
                result.inserted = db.insert_verified_places(result.verified)
    except (GeminiError, requests.RequestException, psycopg2.Error, OSError, ValueError) as exc:
        result.state = JobState.FAILED
        result.error = str(exc)
        logger.error("[%s/%s] failed: %s", region_key, category, exc)
        return result

    result.state = JobState.DONE
    logger.info(
        "[%s/%s] verified=%d rejected=%d inserted=%d",
        region_key,
        category,
        result.verified_count,
        result.rejected_count,
        result.inserted,
    )
    return result


def batch_jobs(tier: Optional[int] = None) -> List[Tuple[str, str]]:
    """Every region/category pair of ``tier``, or of all tiers when None."""
    tiers = [tier] if tier is not None else sorted({r.tier for r in REGIONS.values() if r.tier is not None})
    return [(region, category) for t in tiers for region in regions_in_tier(t) for category in CATEGORIES]


def run_batch(
    jobs: Sequence[Tuple[str, str]],
    settings: Settings,
    client,
    *,
    replace: bool = False,
    dry_run: bool = False,
    policy: BackoffPolicy = DEFAULT_POLICY,
) -> SeedReport:
    report = SeedReport()
    for index, (region_key, category) in enumerate(jobs):
        try:
            result = run_job(region_key, category, settings, client, replace=replace, dry_run=dry_run, policy=policy)
        except Exception as exc:  # noqa: BLE001
            logger.error("[%s/%s] failed: %s", region_key, category, exc)
            result = JobResult(region=region_key, category=category, state=JobState.FAILED, error=str(exc))
        report.results.append(result)
        if index < len(jobs) - 1:
            time.sleep(JOB_DELAY_SECONDS)
    return report


def log_report(report: SeedReport) -> None:
    for line in report.format_lines():
        logger.info(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate and verify RAG places")
    parser.add_argument("--region", help="Region key, e.g. osaka")
    parser.add_argument("--type", dest="category", choices=CATEGORIES, help="Place type")
    parser.add_argument("--tier", type=int, choices=range(1, 6), help="Run every region/type in a tier")
    parser.add_argument("--all", dest="all_tiers", action="store_true", help="Run every tiered region/type")
    parser.add_argument("--replace", action="store_true", help="Delete existing region/type rows before insert")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Skip database writes")
    parser.add_argument("--limit", type=int, help="Override the candidate count for a single job")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> SeedReport:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    is_batch = args.all_tiers or args.tier is not None
    if not is_batch and not (args.region and args.category):
        parser.error("use --region and --type for a single job, or --tier N / --all for a batch")

    try:
        settings = get_settings()
        fields = ["gemini_api_key", "google_api_key"]
        if not args.dry_run:
            fields.append("database_url")
        require(settings, *fields)
        if not is_batch and get_region(args.region) is None:
            raise UnknownRegionError(f"Unknown region: {args.region} (use one of {', '.join(REGIONS)})")

        client = gemini.build_client(settings)
        gemini.check_connection(client, settings.gemini_model)
        if not args.dry_run:
            db.init_pool(settings)

        if is_batch:
            jobs = batch_jobs(None if args.all_tiers else args.tier)
            logger.info(
                "Batch run: %d jobs (replace=%s, dry_run=%s)", len(jobs), args.replace, args.dry_run
            )
            report = run_batch(jobs, settings, client, replace=args.replace, dry_run=args.dry_run)
        else:
            logger.info(
                "Single run: %s/%s (replace=%s, dry_run=%s, limit=%s)",
                args.region,
                args.category,
                args.replace,
                args.dry_run,
                args.limit,
            )
            result = run_job(
                args.region.strip().lower(),
                args.category,
                settings,
                client,
                replace=args.replace,
                dry_run=args.dry_run,
                limit=args.limit,
            )
            report = SeedReport(results=[result])
    except ConfigError as exc:
        logger.error("%s", exc)
        raise SystemExit(2) from exc

    log_report(report)
    return report


if __name__ == "__main__":
    main()
