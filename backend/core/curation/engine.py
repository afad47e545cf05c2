# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Curation Engine

Ordered batch passes over every non-blocked catalog record:

1. Recompute repo_skill_count per (owner, repo)
2. Repositories with 50+ skills -> aggregator
3. Remaining unclassified records:
   a. 10+ unclassified skills and an aggregator-style repo name -> aggregator
   b. 3+ unclassified skills -> collection
   c. At most 2 skills and a project-bound name -> project-bound
   d. Everything else -> standalone
4. Fill missing content hashes; rehash everything if any stored hash came
   from a different algorithm version
5. Resolve duplicates: one canonical record per content hash
6. Repository names copied under 3+ owners with 20+ skills each -> aggregator
7. Recompute category counts over browse-ready records
8. Summary

Steps run strictly in order. Each step persists its own changes before the
next one starts, so a failed run can be resumed from any step, and every
step is safe to re-run. A dry run computes the same changes without writing.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.curation import rules
from core.curation.rules import CatalogEntry
from core.indexing.hashing import content_hash, is_current_hash
from models.enums import SkillType

logger = logging.getLogger(__name__)

STEP_NAMES = {
    1: "repo-skill-count",
    2: "large-aggregators",
    3: "classify",
    4: "content-hash",
    5: "duplicates",
    6: "fork-marketplaces",
    7: "category-counts",
    8: "summary",
}

SUMMARY_EXAMPLES = 20


@dataclass
class CurationReport:
    dry_run: bool
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"dry_run": self.dry_run, "steps": self.steps, "duration": round(self.duration, 2)}


class CurationEngine:
    """Run the curation steps through a CatalogRepository."""

    def __init__(self, repository):
        self.repository = repository
        self._updates: Dict[str, Dict[str, Any]] = {}
        self._originals: Dict[tuple, Any] = {}

    # =========================================================================
    # Runner
    # =========================================================================

    def run(self, dry_run: bool = False, step: Optional[int] = None) -> CurationReport:
        """
        Run every step, or just ``step`` (1-8).

        Raises:
            ValueError: Unknown step number
        """
        if step is not None and step not in STEP_NAMES:
            raise ValueError(f"Unknown curation step {step}; expected 1-{len(STEP_NAMES)}")

        report = CurationReport(dry_run=dry_run)
        started = time.time()
        entries = self.repository.catalog_snapshot()
        logger.info(f"Curation starting over {len(entries)} records (dry_run={dry_run}, step={step})")

        steps: Dict[int, Callable[[List[CatalogEntry]], Dict[str, Any]]] = {
            1: self.step_repo_skill_count,
            2: self.step_large_aggregators,
            3: self.step_classify,
            4: self.step_content_hash,
            5: self.step_duplicates,
            6: self.step_fork_marketplaces,
            7: lambda e: self.step_category_counts(e, dry_run),
            8: self.step_summary,
        }

        for number, runner in steps.items():
            if step is not None and number != step:
                continue
            self._updates = {}
            self._originals = {}
            result = runner(entries)
            result["changed"] = len(self._updates)
            if self._updates and not dry_run:
                self.repository.save_curation_updates(self._updates)
            report.steps[f"{number}:{STEP_NAMES[number]}"] = result
            logger.info(f"Curation step {number} ({STEP_NAMES[number]}): {result}")

        report.duration = time.time() - started
        return report

    def _set(self, entry: CatalogEntry, column: str, value: Any):
        current = getattr(entry, column)
        if current == value:
            return
        original = self._originals.setdefault((entry.id, column), current)
        setattr(entry, column, value)

        # A value set back to its starting point within one step is not a change
        changes = self._updates.setdefault(entry.id, {})
        if value == original:
            changes.pop(column, None)
            if not changes:
                del self._updates[entry.id]
        else:
            changes[column] = value

    # =========================================================================
    # Steps
    # =========================================================================

    def step_repo_skill_count(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        counts: Dict[tuple, int] = defaultdict(int)
        for entry in entries:
            counts[entry.repo_key] += 1
        for entry in entries:
            self._set(entry, "repo_skill_count", counts[entry.repo_key])
        return {"repositories": len(counts)}

    def step_large_aggregators(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        for entry in entries:
            if entry.skill_type is None and (entry.repo_skill_count or 0) >= rules.AGGREGATOR_MIN_SKILLS:
                self._set(entry, "skill_type", SkillType.AGGREGATOR.value)
        return {}

    def _unclassified_by_repo(self, entries: List[CatalogEntry]) -> Dict[tuple, List[CatalogEntry]]:
        groups: Dict[tuple, List[CatalogEntry]] = defaultdict(list)
        for entry in entries:
            if entry.skill_type is None:
                groups[entry.repo_key].append(entry)
        return groups

    def step_classify(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        assigned: Dict[str, int] = defaultdict(int)

        for (_, repo), group in self._unclassified_by_repo(entries).items():
            if len(group) >= rules.NAMED_AGGREGATOR_MIN_SKILLS and rules.has_aggregator_name(repo):
                for entry in group:
                    self._set(entry, "skill_type", SkillType.AGGREGATOR.value)
                    assigned[SkillType.AGGREGATOR.value] += 1

        for group in self._unclassified_by_repo(entries).values():
            if len(group) >= rules.COLLECTION_MIN_SKILLS:
                for entry in group:
                    self._set(entry, "skill_type", SkillType.COLLECTION.value)
                    assigned[SkillType.COLLECTION.value] += 1

        for entry in entries:
            if entry.skill_type is not None:
                continue
            if (entry.repo_skill_count or 0) <= rules.PROJECT_BOUND_MAX_SKILLS and rules.looks_project_bound(entry.name):
                skill_type = SkillType.PROJECT_BOUND.value
            else:
                skill_type = SkillType.STANDALONE.value
            self._set(entry, "skill_type", skill_type)
            assigned[skill_type] += 1

        return {"assigned": dict(assigned)}

    def step_content_hash(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        stale = any(e.content_hash and not is_current_hash(e.content_hash) for e in entries)
        if stale:
            logger.warning("Stored content hashes from another algorithm version found, rehashing the whole catalog")

        missing_content = 0
        cleared = 0
        for entry in entries:
            if entry.raw_content is None:
                missing_content += 1
                # An old-version hash that cannot be recomputed is dropped
                if entry.content_hash and not is_current_hash(entry.content_hash):
                    self._set(entry, "content_hash", None)
                    cleared += 1
                continue
            if stale or not entry.content_hash:
                self._set(entry, "content_hash", content_hash(entry.raw_content))
        return {"full_rehash": stale, "without_content": missing_content, "cleared": cleared}

    def step_duplicates(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        for entry in entries:
            self._set(entry, "is_duplicate", False)
            self._set(entry, "canonical_skill_id", None)

        groups: Dict[str, List[CatalogEntry]] = defaultdict(list)
        for entry in entries:
            if entry.content_hash:
                groups[entry.content_hash].append(entry)

        duplicate_groups = 0
        duplicates = 0
        for group in groups.values():
            if len(group) < 2:
                continue
            duplicate_groups += 1
            canonical = rules.select_canonical(group)
            for entry in group:
                if entry is canonical:
                    continue
                self._set(entry, "is_duplicate", True)
                self._set(entry, "canonical_skill_id", canonical.id)
                duplicates += 1

        return {"groups": duplicate_groups, "duplicates": duplicates}

    def step_fork_marketplaces(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        large = [e for e in entries if (e.repo_skill_count or 0) >= rules.FORK_MARKETPLACE_MIN_SKILLS]
        owners: Dict[str, set] = defaultdict(set)
        for entry in large:
            owners[entry.github_repo.lower()].add(entry.github_owner.lower())

        marketplaces = {
            name: len(owner_set)
            for name, owner_set in owners.items()
            if len(owner_set) >= rules.FORK_MARKETPLACE_MIN_OWNERS
        }
        for entry in large:
            if entry.github_repo.lower() in marketplaces:
                self._set(entry, "skill_type", SkillType.AGGREGATOR.value)

        top = sorted(marketplaces.items(), key=lambda item: item[1], reverse=True)[:15]
        return {"marketplaces": dict(top)}

    def step_category_counts(self, entries: List[CatalogEntry], dry_run: bool = False) -> Dict[str, Any]:
        browse_ready = {e.id for e in entries if e.is_browse_ready}
        counts: Dict[str, int] = {category_id: 0 for category_id in self.repository.category_ids()}
        for skill_id, category_id in self.repository.category_links():
            if skill_id in browse_ready:
                counts[category_id] = counts.get(category_id, 0) + 1

        if not dry_run:
            self.repository.set_category_counts(counts)
        return {
            "categories": len(counts),
            "empty": sorted(c for c, n in counts.items() if n == 0),
            "counts": counts,
        }

    def step_summary(self, entries: List[CatalogEntry]) -> Dict[str, Any]:
        unique = [e for e in entries if not e.is_duplicate]
        by_type: Dict[str, int] = defaultdict(int)
        for entry in unique:
            by_type[entry.skill_type or "unclassified"] += 1

        standalone = sorted(
            (e for e in unique if e.skill_type == SkillType.STANDALONE.value),
            key=lambda e: e.github_stars,
            reverse=True
        )
        return {
            "total": len(entries),
            "unique": len(unique),
            "duplicates": len(entries) - len(unique),
            "by_type": dict(by_type),
            "browse_ready": len([e for e in entries if e.is_browse_ready]),
            "top_standalone": [
                {"id": e.id, "stars": e.github_stars} for e in standalone[:SUMMARY_EXAMPLES]
            ],
        }


__all__ = ["CurationEngine", "CurationReport", "STEP_NAMES"]
