# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Topic-search discovery

Repository search by topic tags and by readme/description/name queries.
Results are sorted by stars; each query is paged up to five times.
"""

import logging
from typing import Dict, List, Optional

import httpx

from core.exceptions import UpstreamError
from core.discovery.refs import RepoRef
from models.enums import DiscoverySource

logger = logging.getLogger(__name__)

MAX_SEARCH_PAGES = 5
SEARCH_PER_PAGE = 100

SKILL_TOPICS = [
    "claude-skills", "agent-skills", "ai-skills", "claude-code", "codex-skills",
    "copilot-skills", "skill-md", "anthropic-skills", "claude-code-skills",
    "ai-agent-skills", "skill", "skills", "clawdhub", "clawdbot", "skillhub",
    "ai-agent", "claude-agent", "anthropic", "llm-skills", "mcp-skills",
    "cursor-rules", "cursorrules", "windsurf-rules", "windsurfrules",
    "copilot-instructions", "github-copilot", "codex-agent", "openai-codex",
]

REPO_SEARCH_QUERIES = [
    "SKILL.md in:readme",
    "claude skills in:description",
    "agent skills in:description",
    '"agent skill" in:readme',
    "claude code skill in:readme",
    "codex skill in:readme",
    "skill.md file in:readme",
    "clawdhub in:description",
    "clawdbot in:description",
    "claude code skills in:description",
    "agent skill in:name",
    "skills archive in:description",
    "anthropic skills in:description",
    ".cursorrules in:readme",
    "cursor rules in:description",
    "AGENTS.md in:readme",
    "codex agents in:description",
    "copilot-instructions in:readme",
    "windsurf rules in:description",
    ".windsurfrules in:readme",
]


class TopicSearchStrategy:
    """Find candidate repositories through repository search."""

    def __init__(
        self,
        pool,
        topics: Optional[List[str]] = None,
        queries: Optional[List[str]] = None,
        max_pages: int = MAX_SEARCH_PAGES
    ):
        self.pool = pool
        self.topics = topics if topics is not None else list(SKILL_TOPICS)
        self.queries = queries if queries is not None else list(REPO_SEARCH_QUERIES)
        self.max_pages = max_pages

    async def search(self, query: str) -> List[RepoRef]:
        """
        Page through one repository search.

        Only continues past page one when the total exceeds one page. A 422
        (past the 1000-result window) or any other upstream failure ends
        the query with what was collected so far.
        """
        refs: List[RepoRef] = []
        page = 1
        while page <= self.max_pages:
            try:
                data = await self.pool.search_repos(query, page=page, per_page=SEARCH_PER_PAGE)
            except UpstreamError as e:
                if e.status != 422:
                    logger.warning(f"Repository search failed for '{query}' page {page}: {e}")
                break

            items = data.get("items", [])
            refs.extend(RepoRef.from_api(item, DiscoverySource.TOPIC_SEARCH.value) for item in items)

            if data.get("total_count", 0) <= SEARCH_PER_PAGE or len(items) < SEARCH_PER_PAGE:
                break
            page += 1
        return refs

    async def discover(self) -> List[RepoRef]:
        """Every topic and query, deduplicated case-insensitively (first seen wins)."""
        unique: Dict[str, RepoRef] = {}
        all_queries = [f"topic:{t}" for t in self.topics] + self.queries

        for query in all_queries:
            try:
                found = await self.search(query)
            except httpx.HTTPError as e:
                logger.warning(f"Repository search '{query}' failed: {e}")
                continue
            new = 0
            for ref in found:
                if ref.key not in unique:
                    unique[ref.key] = ref
                    new += 1
            logger.debug(f"Query '{query}': {len(found)} results, {new} new")

        logger.info(f"Topic search found {len(unique)} unique repositories")
        return list(unique.values())


__all__ = ["TopicSearchStrategy", "SKILL_TOPICS", "REPO_SEARCH_QUERIES"]
