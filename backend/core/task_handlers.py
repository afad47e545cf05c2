# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Job Handlers


Registry of handlers for every indexing job type.

Each handler is an async function that:
1. Receives the shared IndexerContext, the job payload and a progress reporter
2. Performs the long-running operation, reporting coarse progress (0-100)
3. Returns a result dict on success
4. Raises on failure (automatic retry with backoff)

Per-item work inside a handler runs under its own bounded concurrency so a
single job cannot drain API quota for the rest of the system. One failing
item is logged and counted; it never aborts the batch.

Handlers Implemented:
- full-crawl: Seed repositories + code search, index everything found
- incremental: Code search restricted to recently pushed repositories
- index-skill: Index one skill source
- discover-repos: Run every repository discovery strategy
- awesome-lists: Harvest curated lists
- deep-scan: Tree-scan discovered repositories and index their files
- full-enhanced: discover-repos -> deep-scan -> full-crawl
- process-add-requests: Index user-submitted repositories
- multi-platform: Code search for non-SKILL.md instruction files
- curate: Run the curation engine
"""

import datetime
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from core.concurrency import gather_limited
from core.curation.engine import CurationEngine
from core.discovery.code_search import discover_skill_sources
from core.discovery.curated_lists import CuratedListStrategy
from core.discovery.orchestrator import DiscoveryOrchestrator
from core.discovery.refs import SkillSource
from core.exceptions import JobError, RateLimitError, SecondaryRateLimitError, UpstreamError
from core.indexing.formats import FORMATS, PRIMARY_FORMAT, get_format
from core.indexing.indexer import INDEXED, UNCHANGED, IndexResult, index_candidate, parse_timestamp
from core.task_queue import get_registry, register_handler
from models.enums import AddRequestStatus, JobType

logger = logging.getLogger(__name__)

FULL_CRAWL_CONCURRENCY = 3
INCREMENTAL_CONCURRENCY = 5
NO_SKILL_FILE_MESSAGE = "No SKILL.md found - requires manual review"
NOTHING_INDEXED_MESSAGE = "Could not index any skills"


# =============================================================================
# Helpers
# =============================================================================

class PhaseReporter:
    """Maps a sub-job's 0-100 progress onto a slice of the parent job's progress."""

    def __init__(self, reporter, start: int, end: int):
        self.reporter = reporter
        self.start = start
        self.end = end

    @property
    def job_id(self):
        return self.reporter.job_id

    async def update(self, progress: int):
        await self.reporter.update(self.start + (self.end - self.start) * progress / 100)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


async def index_sources(
    ctx,
    sources: List[SkillSource],
    reporter,
    max_concurrent: int,
    force: bool = False,
    min_stars: int = 0,
    updated_after: Optional[datetime.datetime] = None,
    progress_start: int = 30,
    progress_span: int = 60
) -> Dict[str, int]:
    """
    Index a batch of sources with bounded concurrency.

    Returns:
        Counts of indexed, unchanged, skipped and failed sources
    """
    counts = {"indexed": 0, "unchanged": 0, "skipped": 0, "failed": 0}
    total = len(sources)

    async def index_one(index: int, source: SkillSource) -> IndexResult:
        try:
            return await index_candidate(ctx, source, force=force, min_stars=min_stars, updated_after=updated_after)
        finally:
            await reporter.update(progress_start + int(index / max(total, 1) * progress_span))

    results = await gather_limited(sources, index_one, max_concurrent=max_concurrent)

    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            logger.warning(f"Failed to index {source.key}: {result}")
            counts["failed"] += 1
        elif result.status == INDEXED:
            counts["indexed"] += 1
        elif result.status == UNCHANGED:
            counts["unchanged"] += 1
        else:
            counts["skipped"] += 1

    return counts


def parse_repository_url(url: str) -> Tuple[str, str]:
    """
    Extract (owner, repo) from a repository URL.

    Raises:
        ValueError: URL has no owner/repo path
    """
    parts = [p for p in urlparse((url or "").strip()).path.split("/") if p]
    if len(parts) < 2:
        raise ValueError("Invalid repository URL")
    repo = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
    return parts[0], repo


def _option(payload: Dict[str, Any], key: str, default: Any) -> Any:
    value = payload.get(key)
    return default if value is None else value


# =============================================================================
# Crawl Handlers
# =============================================================================

@register_handler(JobType.FULL_CRAWL.value)
async def handle_full_crawl(ctx, payload: dict, reporter) -> dict:
    """
    Discover candidates through seed repositories and code search, then index them.

    Payload:
        minStars: int - Minimum repository stars (default 2)
        maxPages: int - Maximum search pages per query segment (default 50)
        force: bool - Rewrite unchanged records
    """
    started = time.time()
    min_stars = _option(payload, "minStars", 2)
    max_pages = _option(payload, "maxPages", 50)
    force = bool(payload.get("force", False))

    await reporter.update(10)
    await ctx.pool.wait_for_budget(ctx.quota_reserve)
    sources = await discover_skill_sources(ctx.pool, ctx.code_search, max_pages=max_pages)
    logger.info(f"Job {reporter.job_id}: discovered {len(sources)} potential skills")

    await reporter.update(30)
    counts = await index_sources(
        ctx, sources, reporter, FULL_CRAWL_CONCURRENCY, force=force, min_stars=min_stars
    )
    await reporter.update(100)

    return {
        "success": True,
        "stats": {"discovered": len(sources), **counts, "duration": round(time.time() - started, 2)},
    }


@register_handler(JobType.INCREMENTAL.value)
async def handle_incremental(ctx, payload: dict, reporter) -> dict:
    """
    Re-index candidates from repositories pushed after ``updatedAfter``.

    Payload:
        updatedAfter: str - ISO timestamp (default: 24 hours ago)
        minStars: int - Minimum repository stars (default 1)
        maxPages: int - Maximum search pages per query segment (default 20)
    """
    started = time.time()
    updated_after = parse_timestamp(payload.get("updatedAfter")) or utcnow() - datetime.timedelta(hours=24)
    if updated_after.tzinfo is None:
        updated_after = updated_after.replace(tzinfo=datetime.timezone.utc)

    await reporter.update(10)
    logger.info(f"Job {reporter.job_id}: looking for skills updated since {updated_after.isoformat()}")
    await ctx.pool.wait_for_budget(ctx.quota_reserve)
    sources = await discover_skill_sources(ctx.pool, ctx.code_search, max_pages=_option(payload, "maxPages", 20))

    await reporter.update(30)
    counts = await index_sources(
        ctx, sources, reporter, INCREMENTAL_CONCURRENCY,
        force=True, min_stars=_option(payload, "minStars", 1), updated_after=updated_after
    )
    await reporter.update(100)

    return {
        "success": True,
        "stats": {"discovered": len(sources), **counts, "duration": round(time.time() - started, 2)},
    }


@register_handler(JobType.INDEX_SKILL.value)
async def handle_index_skill(ctx, payload: dict, reporter) -> dict:
    """
    Index one source.

    Payload:
        source: dict - owner, repo, path, branch, source_format
        force: bool - Rewrite even when unchanged
    """
    if not payload.get("source"):
        raise JobError(JobType.INDEX_SKILL.value, "Missing skill source")

    source = SkillSource.from_dict(payload["source"])
    await reporter.update(10)
    result = await index_candidate(ctx, source, force=bool(payload.get("force", False)))
    await reporter.update(100)

    return {
        "success": True,
        "status": result.status,
        "skillId": result.skill_id or f"{source.owner}/{source.repo}/{source.path}",
        "reason": result.reason,
    }


# =============================================================================
# Discovery Handlers
# =============================================================================

@register_handler(JobType.DISCOVER_REPOS.value)
async def handle_discover_repos(ctx, payload: dict, reporter) -> dict:
    """Run the discovery strategies and save the merged repositories."""
    orchestrator = DiscoveryOrchestrator(ctx.pool, ctx.repository, quota_reserve=ctx.quota_reserve)

    await reporter.update(10)
    result = await orchestrator.run(payload.get("strategies"))

    await reporter.update(50)
    saved = orchestrator.persist(result.repos)
    await reporter.update(100)

    stats = result.stats()
    stats["saved"] = saved
    return {"success": True, "stats": stats}


@register_handler(JobType.AWESOME_LISTS.value)
async def handle_awesome_lists(ctx, payload: dict, reporter) -> dict:
    """Parse every known curated list and save the repositories it references."""
    strategy = CuratedListStrategy(ctx.pool)

    await reporter.update(10)
    await ctx.pool.wait_for_budget(ctx.quota_reserve)
    if payload.get("searchLists"):
        strategy.lists = strategy.lists + await strategy.discover_lists()

    await reporter.update(30)
    list_results = await strategy.crawl_all()

    await reporter.update(60)
    saved = 0
    for list_id, refs in list_results.items():
        owner, repo = list_id.split("/", 1)
        ctx.repository.upsert_curated_list(owner, repo, len(refs))
        saved += ctx.repository.upsert_discovered_repos(refs)
        logger.info(f"{list_id}: {len(refs)} repos")

    await reporter.update(100)
    return {"success": True, "stats": {"lists": len(list_results), "discovered": saved}}


@register_handler(JobType.DEEP_SCAN.value)
async def handle_deep_scan(ctx, payload: dict, reporter) -> dict:
    """
    Tree-scan discovered repositories that were never scanned or are stale.

    Payload:
        scanLimit: int - Repositories per batch (default 100)
        allBranches: bool - Scan every matching branch, not just the default
    """
    scan_limit = _option(payload, "scanLimit", 100)
    stale_days = getattr(ctx.settings, "deep_scan_stale_days", 7)
    all_branches = bool(payload.get("allBranches", False))

    await reporter.update(10)
    repos = ctx.repository.repos_needing_scan(utcnow() - datetime.timedelta(days=stale_days), scan_limit)
    if not repos:
        logger.info("No repositories need scanning")
        await reporter.update(100)
        return {"success": True, "stats": {"scanned": 0, "discovered": 0, "indexed": 0}}

    logger.info(f"Job {reporter.job_id}: {len(repos)} repositories to scan")
    await ctx.pool.wait_for_budget(ctx.quota_reserve)

    scanned = 0
    discovered = 0
    indexed = 0
    failed = 0
    errors = 0
    deferred = 0
    for position, repo in enumerate(repos, start=1):
        owner, name = repo["owner"], repo["repo"]
        try:
            sources = await ctx.deep_scan.scan_repository(owner, name, all_branches=all_branches)
            for source in sources:
                try:
                    result = await index_candidate(ctx, source, force=False)
                except (RateLimitError, SecondaryRateLimitError):
                    raise
                except Exception as e:
                    failed += 1
                    logger.warning(f"Failed to index {source.key}: {type(e).__name__}: {e}")
                    continue
                if result.indexed:
                    indexed += 1
        except (RateLimitError, SecondaryRateLimitError) as e:
            # Leave this and the remaining repositories unscanned for the next run
            deferred = len(repos) - position + 1
            logger.warning(f"Rate limited at {owner}/{name} ({e}), leaving {deferred} repositories for the next run")
            break
        except Exception as e:
            errors += 1
            logger.warning(f"Error scanning {owner}/{name}: {type(e).__name__}: {e}")
            ctx.repository.mark_repo_scanned(owner, name, 0, False, str(e))
        else:
            ctx.repository.mark_repo_scanned(owner, name, len(sources), len(sources) > 0)
            scanned += 1
            discovered += len(sources)

        await reporter.update(10 + int(position / len(repos) * 85))

    await reporter.update(100)
    logger.info(
        f"Deep scan complete: {scanned} repos, {discovered} skills found, {indexed} indexed, "
        f"{errors} errors, {deferred} deferred"
    )
    return {
        "success": True,
        "stats": {
            "scanned": scanned,
            "discovered": discovered,
            "indexed": indexed,
            "failed": failed,
            "errors": errors,
            "deferred": deferred,
        },
    }


@register_handler(JobType.FULL_ENHANCED.value)
async def handle_full_enhanced(ctx, payload: dict, reporter) -> dict:
    """discover-repos, then deep-scan, then full-crawl."""
    started = time.time()

    await reporter.update(5)
    logger.info("Step 1/3: Running discovery strategies...")
    discovery = await handle_discover_repos(ctx, payload, PhaseReporter(reporter, 5, 35))

    logger.info("Step 2/3: Running deep scan...")
    deep_scan = await handle_deep_scan(ctx, payload, PhaseReporter(reporter, 35, 65))

    logger.info("Step 3/3: Running full crawl...")
    crawl = await handle_full_crawl(ctx, payload, PhaseReporter(reporter, 65, 100))

    await reporter.update(100)
    return {
        "success": True,
        "stats": {
            **crawl["stats"],
            "discovery": discovery["stats"],
            "deepScan": deep_scan["stats"],
            "duration": round(time.time() - started, 2),
        },
    }


# =============================================================================
# Add Requests
# =============================================================================

async def _process_add_request(ctx, request: Dict[str, Any]) -> str:
    """Index one add-request's paths; returns the request's new status."""
    owner, repo = parse_repository_url(request["repository_url"])
    indexed_ids: List[str] = []

    for skill_path in [p.strip() for p in request["skill_path"].split(",")]:
        skill_name = skill_path.rstrip("/").split("/")[-1] or "skill"
        existing = ctx.repository.get_skill(f"{owner}/{repo}/{skill_name}")
        if existing and not existing.get("is_blocked"):
            indexed_ids.append(existing["id"])
            continue

        try:
            result = await index_candidate(ctx, SkillSource(owner, repo, skill_path or "."), force=True)
        except (UpstreamError, httpx.HTTPError) as e:
            logger.warning(f"Failed to index {owner}/{repo}/{skill_path}: {e}")
            continue
        if result.indexed:
            indexed_ids.append(result.skill_id)

    if indexed_ids:
        ctx.repository.update_add_request(
            request["id"], AddRequestStatus.INDEXED.value, indexed_skill_id=",".join(indexed_ids)
        )
        return AddRequestStatus.INDEXED.value

    ctx.repository.update_add_request(request["id"], AddRequestStatus.APPROVED.value, NOTHING_INDEXED_MESSAGE)
    return AddRequestStatus.APPROVED.value


@register_handler(JobType.PROCESS_ADD_REQUESTS.value)
async def handle_process_add_requests(ctx, payload: dict, reporter) -> dict:
    """
    Index pending user-submitted repositories.

    When pooled quota falls under the reserve the batch stops and the
    remaining requests stay pending for the next run.
    """
    await reporter.update(10)
    requests = ctx.repository.pending_add_requests(payload.get("limit"))
    if not requests:
        logger.info("No pending add requests found")
        await reporter.update(100)
        return {"success": True, "stats": {"pending": 0, "indexed": 0}}

    stats = {"pending": len(requests), "indexed": 0, "approved": 0, "needsReview": 0, "failed": 0, "deferred": 0}
    reserve = _option(payload, "budget", ctx.quota_reserve)

    for position, request in enumerate(requests, start=1):
        if not await ctx.pool.check_budget(reserve):
            stats["deferred"] = len(requests) - position + 1
            logger.warning(f"Quota under reserve, leaving {stats['deferred']} add request(s) pending")
            break

        if not request.get("has_skill_md") or not request.get("skill_path"):
            ctx.repository.update_add_request(request["id"], AddRequestStatus.APPROVED.value, NO_SKILL_FILE_MESSAGE)
            stats["needsReview"] += 1
            continue

        try:
            status = await _process_add_request(ctx, request)
            stats["indexed" if status == AddRequestStatus.INDEXED.value else "approved"] += 1
        except Exception as e:
            logger.error(f"Add request {request['id']} failed: {e}", exc_info=True)
            stats["failed"] += 1
            ctx.repository.update_add_request(request["id"], AddRequestStatus.APPROVED.value, str(e))

        await reporter.update(10 + int(position / len(requests) * 85))

    await reporter.update(100)
    return {"success": True, "stats": stats}


# =============================================================================
# Multi-Platform and Curation
# =============================================================================

@register_handler(JobType.MULTI_PLATFORM.value)
async def handle_multi_platform(ctx, payload: dict, reporter) -> dict:
    """
    Code search for the non-SKILL.md instruction formats.

    Payload:
        format: str - One format key (default: every non-primary format)
        maxPages: int - Maximum search pages per query segment (default 10)
        budget: float - Quota reserve fraction checked before each format
    """
    if payload.get("format"):
        formats = [get_format(payload["format"]).key]
    else:
        formats = [key for key in FORMATS if key != PRIMARY_FORMAT]
    max_pages = _option(payload, "maxPages", 10)
    reserve = _option(payload, "budget", ctx.quota_reserve)

    await reporter.update(5)
    by_format: Dict[str, Dict[str, int]] = {}
    for position, key in enumerate(formats):
        if not await ctx.pool.check_budget(reserve):
            logger.warning(f"Quota under reserve, stopping before format {key}")
            break

        sources = await ctx.code_search.search_by_format(key, max_pages)
        span = 90 / len(formats)
        by_format[key] = {
            "discovered": len(sources),
            **await index_sources(
                ctx, sources, reporter, FULL_CRAWL_CONCURRENCY,
                min_stars=_option(payload, "minStars", 0),
                progress_start=int(5 + position * span), progress_span=int(span)
            ),
        }
        logger.info(f"{key}: {by_format[key]}")

    await reporter.update(100)
    skipped = [key for key in formats if key not in by_format]
    return {"success": True, "stats": {"byFormat": by_format, "skippedFormats": skipped}}


@register_handler(JobType.CURATE.value)
async def handle_curate(ctx, payload: dict, reporter) -> dict:
    """
    Run the curation engine.

    Payload:
        dryRun: bool - Compute changes without writing
        step: int - Run only this step (1-8)
    """
    await reporter.update(5)
    engine = CurationEngine(ctx.repository)
    report = engine.run(dry_run=bool(payload.get("dryRun", False)), step=payload.get("step"))
    await reporter.update(100)
    return {"success": True, **report.to_dict()}


def get_registered_handlers() -> list:
    """Job types with a registered handler."""
    return get_registry().list_handlers()


__all__ = [
    "PhaseReporter",
    "index_sources",
    "parse_repository_url",
    "get_registered_handlers",
]
