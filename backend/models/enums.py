# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Shared Enums for the skill catalog.

Using str inheritance keeps values JSON-serializable and lets them round-trip
through plain string columns.
"""

from enum import Enum


class SkillType(str, Enum):
    """Curation classification of a skill record."""
    STANDALONE = "standalone"        # Single-purpose skill in its own repo
    COLLECTION = "collection"        # Small curated set from one author
    AGGREGATOR = "aggregator"        # Marketplace, awesome list or fork of one
    PROJECT_BOUND = "project-bound"  # Tied to one project's setup


class SecurityStatus(str, Enum):
    """Outcome of the content security scan."""
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class JobState(str, Enum):
    """Lifecycle of a queued indexing job."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    """Named job types accepted by the queue."""
    FULL_CRAWL = "full-crawl"
    INCREMENTAL = "incremental"
    INDEX_SKILL = "index-skill"
    DISCOVER_REPOS = "discover-repos"
    AWESOME_LISTS = "awesome-lists"
    DEEP_SCAN = "deep-scan"
    FULL_ENHANCED = "full-enhanced"
    PROCESS_ADD_REQUESTS = "process-add-requests"
    MULTI_PLATFORM = "multi-platform"
    CURATE = "curate"


class AddRequestStatus(str, Enum):
    """State of a user-submitted "index this repository" request."""
    PENDING = "pending"
    APPROVED = "approved"
    INDEXED = "indexed"
    REJECTED = "rejected"


class DiscoverySource(str, Enum):
    """How a repository entered the discovered-repositories table."""
    AWESOME_LIST = "awesome-list"
    TOPIC_SEARCH = "topic-search"
    FORK_NETWORK = "fork-network"
    CODE_SEARCH = "code-search"
    ADD_REQUEST = "add-request"
