# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Discovery orchestrator

Runs the repository-level strategies in order, merges their output by
case-insensitive ``owner/repo`` and persists the union to the
discovered-repositories table:

1. Curated lists (awesome-style indexes)
2. Topic and description search
3. Fork network, seeded by the repositories found so far
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.discovery.curated_lists import CuratedListStrategy
from core.discovery.fork_network import ForkNetworkStrategy
from core.discovery.refs import RepoRef
from core.discovery.topic_search import TopicSearchStrategy
from models.enums import DiscoverySource

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_RESERVE = 0.33

ALL_STRATEGIES = (
    DiscoverySource.AWESOME_LIST.value,
    DiscoverySource.TOPIC_SEARCH.value,
    DiscoverySource.FORK_NETWORK.value,
)


@dataclass
class DiscoveryResult:
    """Merged repositories plus per-strategy counts."""
    repos: List[RepoRef] = field(default_factory=list)
    by_strategy: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    duration: float = 0.0

    def stats(self) -> Dict[str, object]:
        return {
            "total": len(self.repos),
            "byStrategy": {name: {"repos": count} for name, count in self.by_strategy.items()},
            "errors": self.errors,
            "duration": round(self.duration, 2),
        }


def merge_refs(*groups: List[RepoRef]) -> List[RepoRef]:
    """
    Merge reference groups by case-insensitive key.

    The first occurrence wins; fields it left unset are filled from later ones.
    """
    merged: Dict[str, RepoRef] = {}
    for group in groups:
        for ref in group:
            kept = merged.setdefault(ref.key, ref)
            if kept is ref:
                continue
            for name in ("stars", "forks", "default_branch", "archived"):
                if getattr(kept, name) is None:
                    setattr(kept, name, getattr(ref, name))
    return list(merged.values())


class DiscoveryOrchestrator:
    """Run every repository discovery strategy and persist the merged result."""

    def __init__(
        self,
        pool,
        repository,
        curated: Optional[CuratedListStrategy] = None,
        topics: Optional[TopicSearchStrategy] = None,
        forks: Optional[ForkNetworkStrategy] = None,
        quota_reserve: float = DEFAULT_QUOTA_RESERVE
    ):
        self.pool = pool
        self.repository = repository
        self.quota_reserve = quota_reserve
        self.curated = curated or CuratedListStrategy(pool)
        self.topics = topics or TopicSearchStrategy(pool)
        self.forks = forks or ForkNetworkStrategy(pool)

    async def run(self, strategies: Optional[List[str]] = None) -> DiscoveryResult:
        """
        Run the selected strategies (all by default).

        A failing strategy is logged and contributes nothing; the others
        still run.
        """
        selected = strategies or list(ALL_STRATEGIES)
        result = DiscoveryResult()
        started = time.time()
        groups: List[List[RepoRef]] = []

        if DiscoverySource.AWESOME_LIST.value in selected:
            groups.append(await self._run_strategy(result, DiscoverySource.AWESOME_LIST.value, self.curated.discover))

        if DiscoverySource.TOPIC_SEARCH.value in selected:
            groups.append(await self._run_strategy(result, DiscoverySource.TOPIC_SEARCH.value, self.topics.discover))

        if DiscoverySource.FORK_NETWORK.value in selected:
            seeds = merge_refs(*groups)

            async def fork_discovery():
                return await self.forks.discover(seeds)

            groups.append(await self._run_strategy(result, DiscoverySource.FORK_NETWORK.value, fork_discovery))

        result.repos = merge_refs(*groups)
        result.duration = time.time() - started
        logger.info(
            f"Discovery finished: {len(result.repos)} unique repositories in {result.duration:.1f}s",
            extra={"by_strategy": result.by_strategy}
        )
        return result

    async def _run_strategy(self, result: DiscoveryResult, name: str, runner) -> List[RepoRef]:
        logger.info(f"Running discovery strategy: {name}")
        try:
            # Blocks while pooled quota is under the reserve
            await self.pool.wait_for_budget(self.quota_reserve)
            refs = await runner()
        except Exception as e:
            logger.error(f"Discovery strategy {name} failed: {e}", exc_info=True)
            result.errors[name] = str(e)
            refs = []
        result.by_strategy[name] = len(refs)
        return refs

    def persist(self, refs: List[RepoRef]) -> int:
        """Upsert references into the discovered-repositories table."""
        count = self.repository.upsert_discovered_repos(refs)
        logger.info(f"Saved {count} discovered repositories")
        return count

    async def discover_and_save(self, strategies: Optional[List[str]] = None) -> DiscoveryResult:
        result = await self.run(strategies)
        self.persist(result.repos)
        return result


__all__ = ["DiscoveryOrchestrator", "DiscoveryResult", "merge_refs", "ALL_STRATEGIES"]
