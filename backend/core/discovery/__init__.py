# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Discovery strategies for candidate skill repositories and files.

Repository-level strategies (curated lists, topic search, fork network) feed
the discovered-repositories table through the orchestrator; file-level
strategies (code search, deep scan) produce SkillSource candidates for the
indexer.
"""

from core.discovery.refs import RepoRef, SkillSource
from core.discovery.curated_lists import CuratedListStrategy, extract_repo_references
from core.discovery.code_search import CodeSearchStrategy, discover_skill_sources
from core.discovery.deep_scan import DeepScanStrategy, select_branches
from core.discovery.topic_search import TopicSearchStrategy
from core.discovery.fork_network import ForkNetworkStrategy
from core.discovery.orchestrator import DiscoveryOrchestrator, DiscoveryResult

__all__ = [
    "RepoRef",
    "SkillSource",
    "CuratedListStrategy",
    "extract_repo_references",
    "CodeSearchStrategy",
    "discover_skill_sources",
    "DeepScanStrategy",
    "select_branches",
    "TopicSearchStrategy",
    "ForkNetworkStrategy",
    "DiscoveryOrchestrator",
    "DiscoveryResult",
]
