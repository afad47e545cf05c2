# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Code-search discovery

Finds candidate instruction files with the code search API. The API caps
every query at 1000 results, so SKILL.md searches are segmented by location
and file size; each other format has its own queries.

Also owns the seed repositories (official and community skill collections)
that every full crawl lists directly before searching.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from core.exceptions import (
    NotFoundError,
    RateLimitError,
    SearchResultsLimitError,
    SecondaryRateLimitError,
    UpstreamError,
)
from core.discovery.refs import SkillSource
from core.indexing.formats import PRIMARY_FORMAT, get_format, skill_dir_for

logger = logging.getLogger(__name__)

CODE_SEARCH_DELAY_SECONDS = 7.0
DEFAULT_PER_PAGE = 100
DEFAULT_MAX_PAGES = 10
RATE_LIMIT_WAIT_SECONDS = 60
MAX_PAGE_RETRIES = 3


@dataclass(frozen=True)
class SearchSegment:
    label: str
    query: str
    source_format: str = PRIMARY_FORMAT


SEARCH_SEGMENTS = [
    SearchSegment("all-skills", "filename:SKILL.md"),
    SearchSegment("skills-folder", "filename:SKILL.md path:skills"),
    SearchSegment("claude-folder", "filename:SKILL.md path:.claude"),
    SearchSegment("github-folder", "filename:SKILL.md path:.github"),
    SearchSegment("codex-folder", "filename:SKILL.md path:.codex"),
    SearchSegment("small-files", "filename:SKILL.md size:<1000"),
    SearchSegment("medium-files", "filename:SKILL.md size:1000..5000"),
    SearchSegment("large-files", "filename:SKILL.md size:>5000"),
    SearchSegment("agents-md", "filename:AGENTS.md", "agents.md"),
    SearchSegment("agents-md-sized", "filename:AGENTS.md size:>200", "agents.md"),
    SearchSegment("cursorrules", "filename:.cursorrules", "cursorrules"),
    SearchSegment("cursorrules-sized", "filename:.cursorrules size:>200", "cursorrules"),
    SearchSegment("windsurfrules", "filename:.windsurfrules", "windsurfrules"),
    SearchSegment("copilot-instructions", "filename:copilot-instructions.md path:.github", "copilot-instructions"),
]


@dataclass(frozen=True)
class SeedRepository:
    owner: str
    repo: str
    skills_path: str = "skills"


OFFICIAL_SKILL_SOURCES = [
    SeedRepository("anthropics", "skills"),
    SeedRepository("anthropics", "claude-code"),
]

COMMUNITY_SKILL_SOURCES = [
    SeedRepository("obra", "superpowers"),
    SeedRepository("openclaw", "skills"),
]


def dedupe_sources(sources: Iterable[SkillSource]) -> List[SkillSource]:
    """Keep the first source per owner/repo/path[::format] key."""
    unique: Dict[str, SkillSource] = {}
    for source in sources:
        unique.setdefault(source.key, source)
    return list(unique.values())


class CodeSearchStrategy:
    """
    Paginated code search with pacing between calls.

    Code search has its own, much tighter, secondary limit; calls are spaced
    ``delay`` seconds apart across the whole strategy.
    """

    def __init__(
        self,
        pool,
        delay: float = CODE_SEARCH_DELAY_SECONDS,
        per_page: int = DEFAULT_PER_PAGE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.pool = pool
        self.delay = delay
        self.per_page = per_page
        self._sleep = sleep
        self._slot_lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    async def _wait_for_slot(self):
        async with self._slot_lock:
            loop = asyncio.get_running_loop()
            if self._last_call is not None:
                wait = self._last_call + self.delay - loop.time()
                if wait > 0:
                    await self._sleep(wait)
            self._last_call = loop.time()

    async def run_segment(self, segment: SearchSegment, max_pages: int = DEFAULT_MAX_PAGES) -> List[SkillSource]:
        """Page through one query, keeping only items named like the expected file."""
        fmt = get_format(segment.source_format)
        results: List[SkillSource] = []
        page = 1
        retries = 0

        while page <= max_pages:
            if retries > MAX_PAGE_RETRIES:
                logger.warning(f"[{segment.label}] still rate limited after {MAX_PAGE_RETRIES} retries on page {page}, stopping segment")
                break
            try:
                await self._wait_for_slot()
                data = await self.pool.search_code(segment.query, page=page, per_page=self.per_page)
            except SecondaryRateLimitError as e:
                logger.info(f"Code search secondary limit, waiting {e.retry_after}s...")
                await self._sleep(e.retry_after)
                retries += 1
                continue
            except RateLimitError:
                logger.warning(f"Code search rate limited, waiting {RATE_LIMIT_WAIT_SECONDS}s...")
                await self._sleep(RATE_LIMIT_WAIT_SECONDS)
                retries += 1
                continue
            except SearchResultsLimitError:
                logger.info(f"Reached 1000 result limit for segment {segment.label}")
                break

            items = data.get("items", [])
            if page == 1:
                logger.info(f"[{segment.label}] {segment.query}: {data.get('total_count', 0)} available")
            if not items:
                break

            for item in items:
                if item.get("name") != fmt.filename or not fmt.matches(item.get("path", "")):
                    continue
                repository = item["repository"]
                results.append(SkillSource(
                    owner=repository["owner"]["login"],
                    repo=repository["name"],
                    path=skill_dir_for(item["path"], fmt),
                    branch="",
                    source_format=fmt.key,
                ))

            if len(items) < self.per_page:
                break
            page += 1
            retries = 0

        return results

    async def search_all(
        self,
        max_pages: int = DEFAULT_MAX_PAGES,
        formats: Optional[List[str]] = None
    ) -> List[SkillSource]:
        """Run every segment (optionally restricted to some formats) and dedupe."""
        segments = [s for s in SEARCH_SEGMENTS if formats is None or s.source_format in formats]
        results: List[SkillSource] = []
        for segment in segments:
            found = await self.run_segment(segment, max_pages)
            logger.info(f"Segment {segment.label}: {len(found)} candidates")
            results.extend(found)
        unique = dedupe_sources(results)
        logger.info(f"Code search found {len(unique)} unique candidates")
        return unique

    async def search_by_format(self, source_format: str, max_pages: int = DEFAULT_MAX_PAGES) -> List[SkillSource]:
        get_format(source_format)
        return await self.search_all(max_pages, formats=[source_format])


async def fetch_skills_from_repo(pool, seed: SeedRepository) -> List[SkillSource]:
    """List ``<skills_path>/<dir>/SKILL.md`` entries of a known collection repo."""
    repo_meta = await pool.get_repo(seed.owner, seed.repo)
    branch = repo_meta.get("default_branch", "")
    listing = await pool.get_content(seed.owner, seed.repo, seed.skills_path, ref=branch)
    if not isinstance(listing, list):
        return []

    sources: List[SkillSource] = []
    for entry in listing:
        if entry.get("type") != "dir":
            continue
        skill_path = f"{seed.skills_path}/{entry['name']}"
        try:
            await pool.get_content(seed.owner, seed.repo, f"{skill_path}/SKILL.md", ref=branch)
        except NotFoundError:
            continue
        sources.append(SkillSource(seed.owner, seed.repo, skill_path, branch))
    return sources


async def discover_skill_sources(
    pool,
    code_search: CodeSearchStrategy,
    max_pages: int = DEFAULT_MAX_PAGES,
    formats: Optional[List[str]] = None
) -> List[SkillSource]:
    """
    Full-crawl discovery: seed repositories first, then code search.

    A seed repository that cannot be listed is logged and skipped.
    """
    results: List[SkillSource] = []
    for seed in OFFICIAL_SKILL_SOURCES + COMMUNITY_SKILL_SOURCES:
        try:
            found = await fetch_skills_from_repo(pool, seed)
            logger.info(f"Found {len(found)} skills in {seed.owner}/{seed.repo}")
            results.extend(found)
        except (UpstreamError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch from {seed.owner}/{seed.repo}: {e}")

    results.extend(await code_search.search_all(max_pages, formats))
    return dedupe_sources(results)


__all__ = [
    "CodeSearchStrategy",
    "SearchSegment",
    "SEARCH_SEGMENTS",
    "SeedRepository",
    "OFFICIAL_SKILL_SOURCES",
    "COMMUNITY_SKILL_SOURCES",
    "dedupe_sources",
    "fetch_skills_from_repo",
    "discover_skill_sources",
]
