# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Curation rules - classification thresholds and the canonical tie-break.

Pure functions over ``CatalogEntry`` rows so the rules can be tested without
a database.
"""

import datetime
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from models.enums import SkillType

AGGREGATOR_MIN_SKILLS = 50
NAMED_AGGREGATOR_MIN_SKILLS = 10
COLLECTION_MIN_SKILLS = 3
PROJECT_BOUND_MAX_SKILLS = 2
FORK_MARKETPLACE_MIN_SKILLS = 20
FORK_MARKETPLACE_MIN_OWNERS = 3
CANONICAL_AGE_GAP_DAYS = 75

AGGREGATOR_NAME_KEYWORDS = ("marketplace", "awesome", "collection", "registry")
PROJECT_BOUND_SUBSTRINGS = ("my-", "my_", "project", "team", "internal", "cursorrule", "config", "setup")
PROJECT_BOUND_SUFFIXES = (".mdc",)

BROWSE_READY_TYPES = (SkillType.STANDALONE.value, SkillType.COLLECTION.value)


@dataclass
class CatalogEntry:
    """The curation-relevant columns of one non-blocked skill record."""
    id: str
    name: str
    github_owner: str
    github_repo: str
    skill_type: Optional[str] = None
    repo_skill_count: Optional[int] = None
    is_duplicate: bool = False
    canonical_skill_id: Optional[str] = None
    content_hash: Optional[str] = None
    raw_content: Optional[str] = None
    github_stars: int = 0
    github_forks: int = 0
    repo_created_at: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None
    is_blocked: bool = False

    @property
    def repo_key(self) -> Tuple[str, str]:
        return self.github_owner, self.github_repo

    @property
    def is_aggregator(self) -> bool:
        return self.skill_type == SkillType.AGGREGATOR.value

    @property
    def is_browse_ready(self) -> bool:
        return not self.is_blocked and not self.is_duplicate and self.skill_type in BROWSE_READY_TYPES


# =============================================================================
# Classification predicates
# =============================================================================

def has_aggregator_name(repo_name: str) -> bool:
    lowered = repo_name.lower()
    return any(keyword in lowered for keyword in AGGREGATOR_NAME_KEYWORDS)


def looks_project_bound(skill_name: str) -> bool:
    """Name heuristics for skills tied to one project's setup."""
    lowered = skill_name.lower()
    return (
        any(part in lowered for part in PROJECT_BOUND_SUBSTRINGS)
        or lowered.endswith(PROJECT_BOUND_SUFFIXES)
    )


# =============================================================================
# Canonical selection
# =============================================================================

def is_canonical(a: CatalogEntry, b: CatalogEntry) -> bool:
    """
    Whether ``a`` should be the canonical record over ``b``.

    Fall-through order:
    1. Non-aggregator beats aggregator
    2. Repository ages more than 75 days apart: older repository wins
    3. More stars
    4. More forks
    5. Older repository
    6. Earlier catalog index date
    """
    if a.is_aggregator != b.is_aggregator:
        return not a.is_aggregator

    both_dated = a.repo_created_at is not None and b.repo_created_at is not None
    if both_dated:
        gap = abs(a.repo_created_at - b.repo_created_at)
        if gap > datetime.timedelta(days=CANONICAL_AGE_GAP_DAYS):
            return a.repo_created_at < b.repo_created_at

    if a.github_stars != b.github_stars:
        return a.github_stars > b.github_stars

    if a.github_forks != b.github_forks:
        return a.github_forks > b.github_forks

    if both_dated and a.repo_created_at != b.repo_created_at:
        return a.repo_created_at < b.repo_created_at

    if a.created_at is not None and b.created_at is not None and a.created_at != b.created_at:
        return a.created_at < b.created_at

    # Deterministic final order
    return a.id < b.id


def select_canonical(group: Sequence[CatalogEntry]) -> CatalogEntry:
    best = group[0]
    for entry in group[1:]:
        if is_canonical(entry, best):
            best = entry
    return best


__all__ = [
    "CatalogEntry",
    "is_canonical",
    "select_canonical",
    "has_aggregator_name",
    "looks_project_bound",
    "BROWSE_READY_TYPES",
]
