# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Deep-scan discovery

Lists the full git tree of a repository on a small set of important
branches and matches every path against the instruction-file formats.
Finds files code search misses (unindexed forks, non-default branches).

Branch selection (``select_branches``):
1. The default branch, always first
2. Well-known release-train names, ``release/`` and ``releases/`` prefixes,
   and caller-supplied exact/prefix patterns
3. Version branches (``^[vV]\\d``), newest version first
4. At most 5 non-default branches in total
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from core.exceptions import NotFoundError, RateLimitError, SecondaryRateLimitError, UpstreamError
from core.discovery.refs import SkillSource
from core.indexing.formats import FORMATS, PRIMARY_FORMAT, match_formats, skill_dir_for

logger = logging.getLogger(__name__)

IMPORTANT_BRANCH_NAMES = ("stable", "next", "latest", "canary", "dev", "develop")
IMPORTANT_BRANCH_PREFIXES = ("release/", "releases/")
VERSION_BRANCH_RE = re.compile(r"^[vV]\d")
MAX_EXTRA_BRANCHES = 5
MAX_BRANCH_PAGES = 10

# Known skill directories checked when a tree is too large to list
FALLBACK_SKILL_PATHS = ("skills", ".claude/skills", ".github/skills", ".codex/skills", "")


def _version_key(name: str) -> List[int]:
    parts = re.split(r"[.\-x]", re.sub(r"^[vV]", "", name))
    key = []
    for part in parts:
        digits = re.match(r"\d+", part)
        key.append(int(digits.group()) if digits else 0)
    return key


def _compare_versions(a: List[int], b: List[int]) -> int:
    for i in range(max(len(a), len(b))):
        left = a[i] if i < len(a) else 0
        right = b[i] if i < len(b) else 0
        if left != right:
            return -1 if left > right else 1
    return 0


def select_branches(
    all_branches: Sequence[str],
    default_branch: str,
    extra_patterns: Optional[Sequence[str]] = None
) -> List[str]:
    """
    Pick the branches worth scanning.

    Returns the default branch followed by at most five others; branches
    matching no rule are dropped.
    """
    extra_patterns = extra_patterns or []
    version_branches: List[str] = []
    other_important: List[str] = []

    for name in all_branches:
        if name == default_branch:
            continue
        if name in IMPORTANT_BRANCH_NAMES:
            other_important.append(name)
        elif name.lower().startswith(IMPORTANT_BRANCH_PREFIXES):
            other_important.append(name)
        elif VERSION_BRANCH_RE.match(name):
            version_branches.append(name)
        elif any(name == p or name.startswith(p + "/") for p in extra_patterns):
            other_important.append(name)

    # Insertion sort keeps equal versions in input order
    ordered: List[str] = []
    for name in version_branches:
        key = _version_key(name)
        position = len(ordered)
        for i, existing in enumerate(ordered):
            if _compare_versions(key, _version_key(existing)) < 0:
                position = i
                break
        ordered.insert(position, name)

    non_default = (other_important + ordered[:MAX_EXTRA_BRANCHES])[:MAX_EXTRA_BRANCHES]
    return [default_branch] + non_default


def match_tree_paths(tree: List[Dict], owner: str, repo: str, branch: str) -> List[SkillSource]:
    """Candidate sources for every blob in a tree listing that matches a format."""
    sources: List[SkillSource] = []
    for item in tree:
        path = item.get("path")
        if item.get("type") != "blob" or not path:
            continue
        formats = match_formats(path)
        if not formats:
            continue
        fmt = formats[0]
        sources.append(SkillSource(owner, repo, skill_dir_for(path, fmt), branch, fmt.key))
    return sources


class DeepScanStrategy:
    """Scan repositories' git trees for instruction files."""

    def __init__(self, pool):
        self.pool = pool

    async def list_branches(
        self,
        owner: str,
        repo: str,
        default_branch: str,
        all_branches: bool = False,
        extra_patterns: Optional[Sequence[str]] = None
    ) -> List[str]:
        """Branches to scan; listing failures other than rate limits fall back to the default branch only."""
        names: List[str] = []
        try:
            page = 1
            while page <= (MAX_BRANCH_PAGES if all_branches else 1):
                batch = await self.pool.list_branches(owner, repo, page=page)
                names.extend(b["name"] for b in batch)
                if len(batch) < 100:
                    break
                page += 1
        except (RateLimitError, SecondaryRateLimitError):
            raise
        except (UpstreamError, httpx.HTTPError) as e:
            logger.warning(f"Could not list branches for {owner}/{repo}: {e}")
            return [default_branch]

        if all_branches:
            return [default_branch] + [n for n in names if n != default_branch]
        return select_branches(names, default_branch, extra_patterns)

    async def scan_branch(self, owner: str, repo: str, branch: str) -> Tuple[List[SkillSource], bool]:
        """
        Match one branch's recursive tree.

        Returns:
            (sources, truncated); a truncated tree yields no sources
        """
        try:
            data = await self.pool.get_tree(owner, repo, branch, recursive=True)
        except NotFoundError:
            return [], False
        if data.get("truncated"):
            return [], True
        return match_tree_paths(data.get("tree", []), owner, repo, branch), False

    async def scan_repository(
        self,
        owner: str,
        repo: str,
        all_branches: bool = False,
        extra_patterns: Optional[Sequence[str]] = None
    ) -> List[SkillSource]:
        """
        Deep scan one repository across its selected branches.

        Sources are deduplicated by path and format, preferring the default
        branch. Missing and archived repositories yield []. A truncated
        default-branch tree switches to the known-directory fallback scan.
        """
        try:
            repo_info = await self.pool.get_repo(owner, repo)
        except NotFoundError:
            return []

        if repo_info.get("archived"):
            logger.info(f"Skipping archived repo: {owner}/{repo}")
            return []

        default_branch = repo_info.get("default_branch") or "main"
        branches = await self.list_branches(owner, repo, default_branch, all_branches, extra_patterns)
        if len(branches) > 1:
            logger.info(f"Scanning {len(branches)} branches of {owner}/{repo}: {', '.join(branches)}")

        by_key: Dict[str, SkillSource] = {}
        for branch in branches:
            sources, truncated = await self.scan_branch(owner, repo, branch)
            if truncated and branch == default_branch:
                logger.info(f"Repository {owner}/{repo} is too large, using fallback scan")
                sources = await self.fallback_scan(owner, repo, default_branch)

            for source in sources:
                key = f"{source.path}::{source.source_format}"
                existing = by_key.get(key)
                if existing is None or (existing.branch != default_branch and source.branch == default_branch):
                    by_key[key] = source

        found = list(by_key.values())
        if found:
            off_default = len([s for s in found if s.branch != default_branch])
            logger.info(f"Found {len(found)} skills in {owner}/{repo} ({off_default} on non-default branches)")
        return found

    async def fallback_scan(self, owner: str, repo: str, branch: str) -> List[SkillSource]:
        """Check the known skill directories (one level deep) and root instruction files."""
        sources: List[SkillSource] = []

        for base in FALLBACK_SKILL_PATHS:
            try:
                listing = await self.pool.get_content(owner, repo, base, ref=branch)
            except NotFoundError:
                continue
            if not isinstance(listing, list):
                continue

            if any(item.get("name") == "SKILL.md" for item in listing):
                sources.append(SkillSource(owner, repo, base or ".", branch))

            for entry in listing:
                if entry.get("type") != "dir":
                    continue
                try:
                    sub = await self.pool.get_content(owner, repo, entry["path"], ref=branch)
                except NotFoundError:
                    continue
                if isinstance(sub, list) and any(item.get("name") == "SKILL.md" for item in sub):
                    sources.append(SkillSource(owner, repo, entry["path"], branch))

        for fmt in FORMATS.values():
            if fmt.key == PRIMARY_FORMAT:
                continue
            try:
                content = await self.pool.get_file_text(owner, repo, fmt.file_path("."), ref=branch)
            except NotFoundError:
                continue
            if len(content) >= fmt.min_length:
                sources.append(SkillSource(owner, repo, ".", branch, fmt.key))

        return sources

    async def scan_repositories(
        self,
        repos: Sequence[Tuple[str, str]],
        all_branches: bool = False
    ) -> Dict[str, List[SkillSource]]:
        """Scan several repositories; one failure yields [] for that repository only."""
        results: Dict[str, List[SkillSource]] = {}
        for owner, repo in repos:
            try:
                results[f"{owner}/{repo}"] = await self.scan_repository(owner, repo, all_branches)
            except (UpstreamError, httpx.HTTPError) as e:
                logger.warning(f"Failed to scan {owner}/{repo}: {e}")
                results[f"{owner}/{repo}"] = []
        return results


__all__ = [
    "DeepScanStrategy",
    "select_branches",
    "match_tree_paths",
    "IMPORTANT_BRANCH_NAMES",
    "FALLBACK_SKILL_PATHS",
]
