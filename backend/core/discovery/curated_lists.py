# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Curated-list discovery

Parses "awesome" lists for repository references, and searches for more
such lists by name and description.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List

import httpx

from core.exceptions import UpstreamError
from core.discovery.refs import RepoRef
from models.enums import DiscoverySource

logger = logging.getLogger(__name__)

REPO_REFERENCE_RE = re.compile(r"github\.com/([a-zA-Z0-9_-]+)/([a-zA-Z0-9_.-]+)", re.IGNORECASE)

# Path tokens that follow an owner but are not repository names
NON_REPO_SEGMENTS = frozenset({"issues", "pulls", "blob", "tree", "raw", "releases"})

# github.com/<token>/... pages that are not user or org namespaces
NON_OWNER_SEGMENTS = frozenset({"topics", "orgs", "sponsors", "settings", "marketplace", "features", "apps"})

LIST_DISCOVERY_QUERIES = [
    "awesome-claude-skills in:name",
    "awesome-agent-skills in:name",
    "awesome claude skills in:description",
    "awesome ai skills in:description",
]


@dataclass(frozen=True)
class CuratedListSource:
    owner: str
    repo: str
    path: str = "README.md"

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.repo}"


KNOWN_CURATED_LISTS = [
    CuratedListSource("travisvn", "awesome-claude-skills"),
    CuratedListSource("VoltAgent", "awesome-claude-skills"),
    CuratedListSource("ComposioHQ", "awesome-claude-skills"),
    CuratedListSource("skillmatic-ai", "awesome-agent-skills"),
    CuratedListSource("github", "awesome-copilot"),
]


def _clean_repo_token(token: str) -> str:
    token = token.split("#")[0].split("/")[0]
    if token.endswith(".git"):
        token = token[:-4]
    return token.rstrip(".")


def extract_repo_references(text: str, source_url: str = None) -> List[RepoRef]:
    """
    Pull every github.com/owner/repo reference out of markdown text.

    Bare URLs and link-wrapped forms are both matched. References are
    deduplicated case-insensitively in first-seen order.
    """
    refs: List[RepoRef] = []
    seen = set()

    for match in REPO_REFERENCE_RE.finditer(text or ""):
        owner = match.group(1)
        repo = _clean_repo_token(match.group(2))

        if not repo or repo.lower() in NON_REPO_SEGMENTS:
            continue
        if owner.lower() in NON_OWNER_SEGMENTS:
            continue

        key = f"{owner}/{repo}".lower()
        if key in seen:
            continue
        seen.add(key)

        refs.append(RepoRef(
            owner=owner,
            repo=repo,
            discovered_via=DiscoverySource.AWESOME_LIST.value,
            source_url=source_url,
        ))

    return refs


class CuratedListStrategy:
    """Harvest repository references from curated lists."""

    def __init__(self, pool, lists: List[CuratedListSource] = None):
        self.pool = pool
        self.lists = lists if lists is not None else list(KNOWN_CURATED_LISTS)

    async def parse_list(self, source: CuratedListSource) -> List[RepoRef]:
        text = await self.pool.get_file_text(source.owner, source.repo, source.path)
        refs = extract_repo_references(text, source_url=f"https://github.com/{source.id}")
        # A list never references itself as a skill repo
        refs = [r for r in refs if r.key != source.id.lower()]
        logger.info(f"Parsed {len(refs)} repository references from {source.id}")
        return refs

    async def crawl_all(self) -> Dict[str, List[RepoRef]]:
        """Parse every configured list; a list that fails yields []."""
        results: Dict[str, List[RepoRef]] = {}
        for source in self.lists:
            try:
                results[source.id] = await self.parse_list(source)
            except (UpstreamError, httpx.HTTPError) as e:
                logger.error(f"Failed to parse curated list {source.id}: {e}")
                results[source.id] = []
        return results

    async def discover_lists(self) -> List[CuratedListSource]:
        """Search for additional curated lists."""
        found: Dict[str, CuratedListSource] = {}
        for query in LIST_DISCOVERY_QUERIES:
            try:
                data = await self.pool.search_repos(query, per_page=30)
            except (UpstreamError, httpx.HTTPError) as e:
                logger.warning(f"Curated list search failed for '{query}': {e}")
                continue
            for item in data.get("items", []):
                source = CuratedListSource(item["owner"]["login"], item["name"])
                found.setdefault(source.id.lower(), source)

        known = {s.id.lower() for s in self.lists}
        new_lists = [s for key, s in found.items() if key not in known]
        logger.info(f"Discovered {len(new_lists)} additional curated lists")
        return new_lists

    async def discover(self, include_search: bool = False) -> List[RepoRef]:
        """Flattened references from every list (and searched lists when requested)."""
        if include_search:
            self.lists = self.lists + await self.discover_lists()

        refs: List[RepoRef] = []
        for list_refs in (await self.crawl_all()).values():
            refs.extend(list_refs)
        return refs


__all__ = [
    "CuratedListSource",
    "CuratedListStrategy",
    "KNOWN_CURATED_LISTS",
    "extract_repo_references",
]
