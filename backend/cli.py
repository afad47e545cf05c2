#!/usr/bin/env python3
# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
SkillHub Indexer command line.

Job commands run the job handler inline in this process; ``enqueue`` submits
the same job to the queue instead, and ``worker`` runs the queue workers with
the recurring schedule.

Usage:
    python cli.py full --min-stars 5
    python cli.py incremental --updated-after 2025-01-01T00:00:00Z
    python cli.py deep-scan --scan-limit 50
    python cli.py index-skill anthropics skills skills/pdf
    python cli.py multi-platform --format cursorrules --max-pages 5 --budget 0.5
    python cli.py curate --dry-run --step 5
    python cli.py enqueue deep-scan --scan-limit 100
    python cli.py token-status
    python cli.py worker

Environment Variables:
    GITHUB_TOKENS: Comma-separated API tokens (or GITHUB_TOKEN)
    DATABASE_URL: PostgreSQL connection string
    MEILI_URL / MEILI_MASTER_KEY: Optional search mirror
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict

from config import settings
from core.exceptions import ConfigurationError, IndexerException
from models.enums import JobType

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

JOB_COMMANDS = {
    "full": JobType.FULL_CRAWL.value,
    "incremental": JobType.INCREMENTAL.value,
    "discover-repos": JobType.DISCOVER_REPOS.value,
    "awesome-lists": JobType.AWESOME_LISTS.value,
    "deep-scan": JobType.DEEP_SCAN.value,
    "full-enhanced": JobType.FULL_ENHANCED.value,
    "process-add-requests": JobType.PROCESS_ADD_REQUESTS.value,
    "index-skill": JobType.INDEX_SKILL.value,
    "multi-platform": JobType.MULTI_PLATFORM.value,
    "curate": JobType.CURATE.value,
}


class ConsoleReporter:
    """Progress reporter for jobs run inline."""

    job_id = "cli"

    def __init__(self):
        self.progress = 0

    async def update(self, progress: int):
        progress = int(progress)
        if progress > self.progress:
            self.progress = progress
            logger.info(f"Progress: {progress}%")


# =============================================================================
# Argument handling
# =============================================================================

def add_job_options(parser: argparse.ArgumentParser):
    parser.add_argument("--min-stars", type=int, help="Minimum repository stars")
    parser.add_argument("--updated-after", help="Only repositories pushed after this ISO timestamp")
    parser.add_argument("--force", action="store_true", help="Rewrite records even when unchanged")
    parser.add_argument("--scan-limit", type=int, help="Repositories per deep-scan batch")
    parser.add_argument("--max-pages", type=int, help="Maximum search pages per query")
    parser.add_argument("--budget", type=float, help="Quota reserve fraction (0-1)")
    parser.add_argument("--format", dest="source_format", help="Instruction file format (multi-platform)")
    parser.add_argument("--all-branches", action="store_true", help="Deep-scan every matching branch")
    parser.add_argument("--dry-run", action="store_true", help="Curation: compute changes without writing")
    parser.add_argument("--step", type=int, choices=range(1, 9), help="Curation: run only this step")


def build_payload(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate CLI options into a job payload."""
    options = {
        "minStars": getattr(args, "min_stars", None),
        "updatedAfter": getattr(args, "updated_after", None),
        "scanLimit": getattr(args, "scan_limit", None),
        "maxPages": getattr(args, "max_pages", None),
        "budget": getattr(args, "budget", None),
        "format": getattr(args, "source_format", None),
        "step": getattr(args, "step", None),
    }
    payload = {key: value for key, value in options.items() if value is not None}
    for flag, key in (("force", "force"), ("all_branches", "allBranches"), ("dry_run", "dryRun")):
        if getattr(args, flag, False):
            payload[key] = True

    if getattr(args, "owner", None):
        payload["source"] = {
            "owner": args.owner,
            "repo": args.repo,
            "path": args.path,
            "branch": args.branch or "",
            "source_format": args.source_format,
        }
        payload.pop("format", None)
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SkillHub indexer: discovery, indexing and curation")
    commands = parser.add_subparsers(dest="command", required=True)

    for name, job_type in JOB_COMMANDS.items():
        sub = commands.add_parser(name, help=f"Run a {job_type} job inline")
        if name == "index-skill":
            sub.add_argument("owner")
            sub.add_argument("repo")
            sub.add_argument("path", nargs="?", default=".")
            sub.add_argument("--branch", help="Branch (default: repository default branch)")
        add_job_options(sub)

    enqueue = commands.add_parser("enqueue", help="Submit a job to the queue")
    enqueue.add_argument("job_type", choices=[t.value for t in JobType])
    enqueue.add_argument("--priority", type=int)
    add_job_options(enqueue)

    commands.add_parser("stats", help="Catalog statistics")
    commands.add_parser("token-status", help="Quota status of every API credential")
    commands.add_parser("discovery-stats", help="Discovered repository statistics")
    commands.add_parser("sync-search", help="Push every listed skill to the search mirror")
    commands.add_parser("worker", help="Run queue workers and the recurring schedule")
    return parser


# =============================================================================
# Commands
# =============================================================================

def print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


async def run_job(job_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    import core.task_handlers  # noqa: F401 - registers job handlers
    from core.task_queue import get_registry
    from services.indexer_context import IndexerContext

    if job_type == JobType.CURATE.value:
        from core.curation.engine import CurationEngine
        from services.catalog_repository import SqlCatalogRepository

        report = CurationEngine(SqlCatalogRepository()).run(
            dry_run=payload.get("dryRun", False), step=payload.get("step")
        )
        return report.to_dict()

    handler = get_registry().get(job_type)
    context = IndexerContext.from_settings(settings)
    try:
        return await handler(context, payload, ConsoleReporter())
    finally:
        await context.aclose()


async def token_status() -> Dict[str, Any]:
    from services.credentials import CredentialManager
    from services.github_client import GitHubClientPool

    credentials = CredentialManager.from_settings(settings)
    pool = GitHubClientPool.from_settings(settings, credentials)
    try:
        await pool.refresh_all()
        return credentials.status().to_dict()
    finally:
        await pool.aclose()


async def sync_search() -> Dict[str, Any]:
    from services.catalog_repository import SqlCatalogRepository
    from services.search_sync import SearchMirror

    mirror = SearchMirror.from_settings(settings)
    if not mirror.enabled:
        return {"synced": 0, "message": "MEILI_URL not configured"}
    try:
        documents = SqlCatalogRepository().search_documents()
        return {"documents": len(documents), "synced": await mirror.sync_all(documents)}
    finally:
        await mirror.aclose()


async def run_worker():
    import core.task_handlers  # noqa: F401 - registers job handlers
    from core.task_queue import JobQueue
    from db.database import init_db
    from services.catalog_repository import SqlCatalogRepository
    from services.indexer_context import IndexerContext
    from services.scheduler_service import RecurringSchedule

    init_db()
    repository = SqlCatalogRepository()
    repository.ensure_categories()
    context = IndexerContext.from_settings(settings, repository=repository)
    queue = JobQueue.from_settings(settings)
    schedule = RecurringSchedule.from_settings(settings, queue)

    await queue.start_workers(context, concurrency=settings.job_concurrency)
    if settings.enable_scheduler:
        schedule.register()
        await schedule.start()

    logger.info("Worker running, press Ctrl+C to stop")
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await schedule.stop()
        await queue.shutdown(timeout=30)
        await context.aclose()


def main(argv=None) -> int:
    """Main entry point for command-line usage."""
    args = build_parser().parse_args(argv)

    try:
        if args.command in JOB_COMMANDS:
            print_json(asyncio.run(run_job(JOB_COMMANDS[args.command], build_payload(args))))

        elif args.command == "enqueue":
            import core.task_handlers  # noqa: F401 - registers job handlers
            from core.task_queue import JobQueue

            job_id = JobQueue.from_settings(settings).enqueue(args.job_type, build_payload(args), priority=args.priority)
            print(f"Enqueued {args.job_type} job {job_id}")

        elif args.command == "stats":
            from services.catalog_repository import SqlCatalogRepository
            print_json(SqlCatalogRepository().stats())

        elif args.command == "discovery-stats":
            from services.catalog_repository import SqlCatalogRepository
            print_json(SqlCatalogRepository().discovery_stats())

        elif args.command == "token-status":
            print_json(asyncio.run(token_status()))

        elif args.command == "sync-search":
            print_json(asyncio.run(sync_search()))

        elif args.command == "worker":
            asyncio.run(run_worker())

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        return 2
    except IndexerException as e:
        logger.error(f"Error: {e.message}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
