# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Fork-network discovery: recently active forks of popular skill repositories."""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import httpx

from core.exceptions import UpstreamError
from core.discovery.refs import RepoRef
from models.enums import DiscoverySource

logger = logging.getLogger(__name__)

MAX_FORK_PAGES = 10
FORKS_PER_PAGE = 100
ACTIVE_WITHIN_SECONDS = 365 * 24 * 3600
MAX_SEED_REPOS = 50
MIN_SEED_STARS = 10


def _is_recent(updated_at: Optional[str], now: float) -> bool:
    if not updated_at:
        return False
    return datetime.fromisoformat(updated_at.replace("Z", "+00:00")).timestamp() >= now - ACTIVE_WITHIN_SECONDS


class ForkNetworkStrategy:
    """Expand a set of seed repositories to their active forks."""

    def __init__(self, pool, clock: Callable[[], float] = time.time):
        self.pool = pool
        self._clock = clock

    async def forks_of(self, owner: str, repo: str) -> List[RepoRef]:
        """Forks updated within the last year, archived forks excluded; stops at the first failure."""
        refs: List[RepoRef] = []
        now = self._clock()
        for page in range(1, MAX_FORK_PAGES + 1):
            try:
                forks = await self.pool.list_forks(owner, repo, page=page, per_page=FORKS_PER_PAGE)
            except (UpstreamError, httpx.HTTPError) as e:
                logger.warning(f"Listing forks of {owner}/{repo} stopped at page {page}: {e}")
                break

            for fork in forks:
                if fork.get("archived") or not _is_recent(fork.get("updated_at"), now):
                    continue
                ref = RepoRef.from_api(fork, DiscoverySource.FORK_NETWORK.value)
                ref.source_url = f"https://github.com/{owner}/{repo}"
                refs.append(ref)

            if len(forks) < FORKS_PER_PAGE:
                break
        return refs

    async def discover(self, seeds: Sequence[RepoRef]) -> List[RepoRef]:
        """Forks of the top seeds by stars (at least MIN_SEED_STARS, at most MAX_SEED_REPOS)."""
        popular = sorted((s for s in seeds if (s.stars or 0) >= MIN_SEED_STARS), key=lambda s: s.stars or 0, reverse=True)
        popular = popular[:MAX_SEED_REPOS]

        unique: Dict[str, RepoRef] = {}
        for seed in popular:
            for ref in await self.forks_of(seed.owner, seed.repo):
                unique.setdefault(ref.key, ref)

        logger.info(f"Fork network found {len(unique)} active forks of {len(popular)} repositories")
        return list(unique.values())


__all__ = ["ForkNetworkStrategy"]
