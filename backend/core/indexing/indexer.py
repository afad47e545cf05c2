# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Skill Indexer - converts one candidate file into a catalog record.

Steps for each candidate:
1. Fetch repository metadata and apply the star / recency filters
2. Fetch the file on the requested (or default) branch
3. Parse and validate it according to its format
4. Skip blocked records; skip unchanged content unless forced
5. Security scan, upsert, category links
6. Mark matching approved add-requests as indexed, mirror to search

Safe to run concurrently for different ids; repeated calls with unchanged
content and ``force=False`` never write.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.discovery.refs import SkillSource
from core.indexing.categories import match_categories
from core.indexing.formats import get_format
from core.indexing.hashing import content_hash
from core.indexing.parser import ParsedSkill, RepoMetadata, parse_instruction_file
from core.indexing.security import scan_content

logger = logging.getLogger(__name__)

INDEXED = "indexed"
UNCHANGED = "unchanged"
SKIPPED = "skipped"


@dataclass
class IndexResult:
    status: str
    skill_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def indexed(self) -> bool:
        return self.status == INDEXED


def parse_timestamp(value: Optional[str]) -> Optional[datetime.datetime]:
    """Parse an API ISO-8601 timestamp ("2024-01-02T03:04:05Z")."""
    if not value:
        return None
    return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))


def build_skill_id(source: SkillSource, parsed: ParsedSkill) -> str:
    """owner/repo/name, with a ~format suffix for non-SKILL.md formats."""
    fmt = get_format(source.source_format)
    name = parsed.metadata.name or source.path.rstrip("/").split("/")[-1] or "skill"
    if name == ".":
        name = "skill"
    return f"{source.owner}/{source.repo}/{name}{fmt.id_suffix}"


def build_record(
    skill_id: str,
    source: SkillSource,
    branch: str,
    repo: RepoMetadata,
    parsed: ParsedSkill,
    raw_content: str,
    digest: str
) -> Dict[str, Any]:
    metadata = parsed.metadata
    report = scan_content(raw_content)
    return {
        "id": skill_id,
        "name": metadata.name,
        "description": metadata.description,
        "github_owner": source.owner,
        "github_repo": source.repo,
        "skill_path": source.path,
        "branch": branch,
        "source_format": parsed.source_format,
        "version": metadata.version,
        "license": metadata.license or repo.license,
        "author": metadata.author,
        "homepage": metadata.homepage,
        "compatibility": metadata.compatibility.to_dict() if metadata.compatibility else None,
        "triggers": metadata.triggers.to_dict() if metadata.triggers else None,
        "extra_metadata": metadata.extra or None,
        "github_stars": repo.stars,
        "github_forks": repo.forks,
        "repo_created_at": parse_timestamp(repo.created_at),
        "security_score": report.score,
        "security_status": report.status.value,
        "content_hash": digest,
        "raw_content": raw_content,
        "indexed_at": datetime.datetime.now(datetime.timezone.utc),
    }


async def index_candidate(
    ctx,
    source: SkillSource,
    force: bool = False,
    min_stars: int = 0,
    updated_after: Optional[datetime.datetime] = None
) -> IndexResult:
    """
    Index one candidate file.

    Args:
        ctx: IndexerContext (pool, repository, search mirror)
        source: Candidate location; an empty branch means the default branch
        force: Write even when the stored hash, path and branch are unchanged
        min_stars: Skip repositories with fewer stars
        updated_after: Skip repositories not pushed since this time

    Returns:
        IndexResult with status indexed, unchanged or skipped

    Raises:
        UpstreamError: The repository or file could not be fetched
    """
    fmt = get_format(source.source_format)
    repo = RepoMetadata.from_api(await ctx.pool.get_repo(source.owner, source.repo))

    if repo.stars < min_stars:
        return IndexResult(SKIPPED, reason=f"{repo.stars} stars is below minimum {min_stars}")
    if updated_after is not None:
        pushed = parse_timestamp(repo.updated_at)
        if pushed is not None and pushed < updated_after:
            return IndexResult(SKIPPED, reason="repository not updated since cutoff")

    branch = source.branch or repo.default_branch
    logger.debug(f"Fetching {source.owner}/{source.repo}/{source.path} [{fmt.key}] @ {branch}")
    raw_content = await ctx.pool.get_file_text(source.owner, source.repo, fmt.file_path(source.path), ref=branch)

    parsed = parse_instruction_file(raw_content, fmt, repo)
    if not parsed.validation.is_valid:
        reason = parsed.validation.summary()
        logger.info(f"Skipping invalid skill {source.key}: {reason}")
        return IndexResult(SKIPPED, reason=reason)

    skill_id = build_skill_id(source, parsed)
    digest = content_hash(raw_content)
    existing = ctx.repository.get_skill(skill_id)

    if existing and existing.get("is_blocked"):
        logger.info(f"Skill {skill_id} is blocked, skipping")
        return IndexResult(SKIPPED, skill_id, reason="blocked")

    if not force and existing and existing.get("content_hash") == digest:
        if existing.get("skill_path") == source.path and existing.get("branch") == branch:
            logger.debug(f"Skill {skill_id} unchanged, skipping")
            return IndexResult(UNCHANGED, skill_id)
        logger.info(f"Skill {skill_id} moved: {existing.get('skill_path')} -> {source.path}")

    record = build_record(skill_id, source, branch, repo, parsed, raw_content, digest)
    ctx.repository.upsert_skill(record)

    try:
        categories = match_categories(record["name"], record["description"])
        ctx.repository.link_categories(skill_id, categories)
        marked = ctx.repository.mark_add_requests_indexed(source.owner, source.repo, skill_id)
        if marked:
            logger.info(f"Marked {marked} add-request(s) for {source.owner}/{source.repo} as indexed")
    except SQLAlchemyError as e:
        logger.warning(f"Post-index bookkeeping failed for {skill_id}: {e}")

    await ctx.search.sync_skill({
        "id": skill_id,
        "name": record["name"],
        "description": record["description"],
        "githubOwner": source.owner,
        "githubRepo": source.repo,
        "compatibility": record["compatibility"],
        "githubStars": repo.stars,
        "securityScore": record["security_score"],
        "sourceFormat": fmt.key,
        "indexedAt": record["indexed_at"].isoformat(),
    })

    logger.info(f"Indexed: {skill_id} [{fmt.key}] (security: {record['security_score']})")
    return IndexResult(INDEXED, skill_id)


__all__ = ["IndexResult", "index_candidate", "build_skill_id", "parse_timestamp", "INDEXED", "UNCHANGED", "SKIPPED"]
