# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Indexer Context

The service objects shared by every job handler, strategy and indexer call,
built once per process and passed explicitly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from core.discovery.code_search import CodeSearchStrategy
from core.discovery.deep_scan import DeepScanStrategy
from services.catalog_repository import CatalogRepository, SqlCatalogRepository
from services.credentials import CredentialManager
from services.github_client import GitHubClientPool
from services.search_sync import SearchMirror

logger = logging.getLogger(__name__)


@dataclass
class IndexerContext:
    settings: object
    credentials: CredentialManager
    pool: GitHubClientPool
    repository: CatalogRepository
    search: SearchMirror
    code_search: Optional[CodeSearchStrategy] = None
    deep_scan: Optional[DeepScanStrategy] = None

    def __post_init__(self):
        if self.code_search is None:
            self.code_search = CodeSearchStrategy(
                self.pool, delay=getattr(self.settings, "code_search_delay_seconds", 7.0)
            )
        if self.deep_scan is None:
            self.deep_scan = DeepScanStrategy(self.pool)

    @classmethod
    def from_settings(cls, settings, repository: Optional[CatalogRepository] = None) -> "IndexerContext":
        """
        Build the production context.

        Raises:
            ConfigurationError: No API credentials configured
        """
        credentials = CredentialManager.from_settings(settings)
        pool = GitHubClientPool.from_settings(settings, credentials)
        logger.info(f"Indexer context ready with {len(credentials.credentials)} API credential(s)")
        return cls(
            settings=settings,
            credentials=credentials,
            pool=pool,
            repository=repository or SqlCatalogRepository(),
            search=SearchMirror.from_settings(settings),
        )

    @property
    def quota_reserve(self) -> float:
        return getattr(self.settings, "quota_reserve_fraction", 0.33)

    async def aclose(self):
        await self.pool.aclose()
        await self.search.aclose()


__all__ = ["IndexerContext"]
