# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Pytest Configuration and Fixtures for SkillHub Indexer Tests.

Provides an IndexerContext wired to in-memory fakes so the indexer, the
job handlers and the curation engine run without PostgreSQL or GitHub.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from services.indexer_context import IndexerContext
from tests.fakes import FakePool, FakeSearch, InMemoryCatalogRepository, RecordingReporter


@pytest.fixture
def test_settings():
    """Settings with pacing disabled."""
    return SimpleNamespace(
        code_search_delay_seconds=0.0,
        quota_reserve_fraction=0.33,
        deep_scan_stale_days=7,
    )


@pytest.fixture
def repository():
    return InMemoryCatalogRepository()


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def search():
    return FakeSearch()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def ctx(test_settings, pool, repository, search):
    """IndexerContext over the fakes."""
    return IndexerContext(
        settings=test_settings,
        credentials=MagicMock(),
        pool=pool,
        repository=repository,
        search=search,
    )
