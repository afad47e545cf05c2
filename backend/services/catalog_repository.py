# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Catalog Repository

Storage boundary for the indexer, the job handlers and the curation engine.
``CatalogRepository`` names every read and write they need; the SQLAlchemy
implementation runs each call in its own short transaction so per-record
writes stay isolated.

Upserts use PostgreSQL ``INSERT ... ON CONFLICT DO UPDATE``: a conflicting
write overwrites mutable columns and never surfaces as an error.
"""

import datetime
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select, update, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from core.curation.rules import CatalogEntry, BROWSE_READY_TYPES
from core.discovery.refs import RepoRef
from core.indexing.categories import CATEGORY_NAMES
from core.session_manager import session_scope
from models.add_request import AddRequest
from models.discovered_repo import CuratedList, DiscoveredRepository
from models.enums import AddRequestStatus
from models.skill import Category, Skill, SkillCategory

logger = logging.getLogger(__name__)

# Columns overwritten when an existing skill is re-indexed. Curation fields,
# counters and the blocked flag are left alone.
SKILL_MUTABLE_COLUMNS = (
    "name", "description", "skill_path", "branch", "source_format", "version",
    "license", "author", "homepage", "compatibility", "triggers", "extra_metadata",
    "github_stars", "github_forks", "repo_created_at", "security_score",
    "security_status", "content_hash", "raw_content", "indexed_at",
)

CURATION_COLUMNS = ("skill_type", "repo_skill_count", "is_duplicate", "canonical_skill_id", "content_hash")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class CatalogRepository(ABC):
    """Every catalog read and write used outside the HTTP layer."""

    # -- skills ---------------------------------------------------------------

    @abstractmethod
    def get_skill(self, skill_id: str) -> Optional[Dict[str, Any]]:
        """id, content_hash, skill_path, branch and is_blocked of one record."""

    @abstractmethod
    def upsert_skill(self, record: Dict[str, Any]) -> None:
        """Insert a record or overwrite its mutable columns."""

    @abstractmethod
    def skill_exists(self, skill_id: str) -> bool:
        """Whether a non-blocked record with this id exists."""

    @abstractmethod
    def link_categories(self, skill_id: str, category_ids: List[str]) -> None:
        """Replace the category links of one record."""

    @abstractmethod
    def search_documents(self) -> List[Dict[str, Any]]:
        """Non-blocked, non-duplicate records shaped for the search mirror."""

    # -- add requests ---------------------------------------------------------

    @abstractmethod
    def mark_add_requests_indexed(self, owner: str, repo: str, skill_id: str) -> int:
        """Move approved requests for a repository to indexed."""

    @abstractmethod
    def pending_add_requests(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Pending requests, oldest first."""

    @abstractmethod
    def update_add_request(
        self,
        request_id: str,
        status: str,
        error_message: Optional[str] = None,
        indexed_skill_id: Optional[str] = None
    ) -> None:
        """Record the outcome of processing a request."""

    # -- discovery ------------------------------------------------------------

    @abstractmethod
    def upsert_discovered_repos(self, refs: Iterable[RepoRef]) -> int:
        """Insert new repositories; refresh signals of known ones."""

    @abstractmethod
    def repos_needing_scan(self, stale_before: datetime.datetime, limit: int) -> List[Dict[str, Any]]:
        """Never-scanned or stale, non-archived repositories, most starred first."""

    @abstractmethod
    def mark_repo_scanned(
        self,
        owner: str,
        repo: str,
        skill_count: int,
        has_skill_md: bool,
        error: Optional[str] = None
    ) -> None:
        """Record a deep-scan outcome."""

    @abstractmethod
    def upsert_curated_list(self, owner: str, repo: str, repo_count: int) -> None:
        """Record that a curated list was parsed."""

    @abstractmethod
    def discovery_stats(self) -> Dict[str, Any]:
        """Counts of discovered repositories by source and scan state."""

    # -- curation -------------------------------------------------------------

    @abstractmethod
    def catalog_snapshot(self) -> List[CatalogEntry]:
        """Every non-blocked record, curation columns only."""

    @abstractmethod
    def save_curation_updates(self, updates: Dict[str, Dict[str, Any]]) -> int:
        """Apply per-record column updates keyed by skill id."""

    @abstractmethod
    def category_links(self) -> List[Tuple[str, str]]:
        """(skill_id, category_id) pairs."""

    @abstractmethod
    def category_ids(self) -> List[str]:
        """Every category id."""

    @abstractmethod
    def set_category_counts(self, counts: Dict[str, int]) -> None:
        """Overwrite each category's skill count; ids missing from counts get 0."""

    # -- reporting ------------------------------------------------------------

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        """Catalog totals for operators."""


class SqlCatalogRepository(CatalogRepository):
    """PostgreSQL implementation on the sync session factory."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _session(self, name: str):
        return session_scope(name, self._session_factory)

    # =========================================================================
    # Skills
    # =========================================================================

    def get_skill(self, skill_id: str) -> Optional[Dict[str, Any]]:
        with self._session("get_skill") as session:
            skill = session.get(Skill, skill_id)
            if skill is None:
                return None
            return {
                "id": skill.id,
                "content_hash": skill.content_hash,
                "skill_path": skill.skill_path,
                "branch": skill.branch,
                "is_blocked": skill.is_blocked,
            }

    def upsert_skill(self, record: Dict[str, Any]) -> None:
        values = dict(record)
        values.setdefault("indexed_at", utcnow())
        stmt = pg_insert(Skill).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Skill.id],
            set_={
                **{col: stmt.excluded[col] for col in SKILL_MUTABLE_COLUMNS if col in values},
                "updated_at": utcnow(),
            }
        )
        with self._session("upsert_skill") as session:
            session.execute(stmt)

    def skill_exists(self, skill_id: str) -> bool:
        with self._session("skill_exists") as session:
            found = session.execute(
                select(Skill.id).where(Skill.id == skill_id, Skill.is_blocked.is_(False))
            ).first()
            return found is not None

    def link_categories(self, skill_id: str, category_ids: List[str]) -> None:
        with self._session("link_categories") as session:
            session.execute(delete(SkillCategory).where(SkillCategory.skill_id == skill_id))
            if category_ids:
                session.execute(
                    pg_insert(SkillCategory)
                    .values([{"skill_id": skill_id, "category_id": c} for c in category_ids])
                    .on_conflict_do_nothing()
                )

    def search_documents(self) -> List[Dict[str, Any]]:
        with self._session("search_documents") as session:
            rows = session.execute(
                select(Skill).where(Skill.is_blocked.is_(False), Skill.is_duplicate.is_(False))
            ).scalars().all()
            return [
                {
                    "id": s.id,
                    "name": s.name,
                    "description": s.description,
                    "githubOwner": s.github_owner,
                    "githubRepo": s.github_repo,
                    "compatibility": s.compatibility,
                    "githubStars": s.github_stars,
                    "securityScore": s.security_score,
                    "sourceFormat": s.source_format,
                    "indexedAt": s.indexed_at.isoformat() if s.indexed_at else None,
                }
                for s in rows
            ]

    # =========================================================================
    # Add requests
    # =========================================================================

    def mark_add_requests_indexed(self, owner: str, repo: str, skill_id: str) -> int:
        pattern = f"%github.com/{owner}/{repo}%"
        with self._session("mark_add_requests_indexed") as session:
            result = session.execute(
                update(AddRequest)
                .where(
                    AddRequest.status == AddRequestStatus.APPROVED.value,
                    AddRequest.repository_url.ilike(pattern),
                )
                .values(
                    status=AddRequestStatus.INDEXED.value,
                    indexed_skill_id=skill_id,
                    processed_at=utcnow(),
                )
            )
            return result.rowcount or 0

    def pending_add_requests(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = (
            select(AddRequest)
            .where(AddRequest.status == AddRequestStatus.PENDING.value)
            .order_by(AddRequest.created_at.asc())
        )
        if limit:
            query = query.limit(limit)
        with self._session("pending_add_requests") as session:
            return [
                {
                    "id": r.id,
                    "repository_url": r.repository_url,
                    "skill_path": r.skill_path,
                    "has_skill_md": r.has_skill_md,
                }
                for r in session.execute(query).scalars().all()
            ]

    def update_add_request(
        self,
        request_id: str,
        status: str,
        error_message: Optional[str] = None,
        indexed_skill_id: Optional[str] = None
    ) -> None:
        with self._session("update_add_request") as session:
            session.execute(
                update(AddRequest)
                .where(AddRequest.id == request_id)
                .values(
                    status=status,
                    error_message=error_message,
                    indexed_skill_id=indexed_skill_id,
                    processed_at=utcnow(),
                )
            )

    # =========================================================================
    # Discovery
    # =========================================================================

    def upsert_discovered_repos(self, refs: Iterable[RepoRef]) -> int:
        count = 0
        with self._session("upsert_discovered_repos") as session:
            for ref in refs:
                stmt = pg_insert(DiscoveredRepository).values(
                    id=ref.full_name,
                    owner=ref.owner,
                    repo=ref.repo,
                    discovered_via=ref.discovered_via,
                    source_url=ref.source_url,
                    github_stars=ref.stars or 0,
                    github_forks=ref.forks or 0,
                    default_branch=ref.default_branch,
                    is_archived=bool(ref.archived),
                )
                # Signals the strategy did not see keep their stored values
                updates = {"updated_at": utcnow()}
                if ref.stars is not None:
                    updates["github_stars"] = stmt.excluded.github_stars
                if ref.forks is not None:
                    updates["github_forks"] = stmt.excluded.github_forks
                if ref.default_branch is not None:
                    updates["default_branch"] = stmt.excluded.default_branch
                if ref.archived is not None:
                    updates["is_archived"] = stmt.excluded.is_archived
                stmt = stmt.on_conflict_do_update(index_elements=[DiscoveredRepository.id], set_=updates)
                session.execute(stmt)
                count += 1
        return count

    def repos_needing_scan(self, stale_before: datetime.datetime, limit: int) -> List[Dict[str, Any]]:
        query = (
            select(DiscoveredRepository)
            .where(
                or_(
                    DiscoveredRepository.last_scanned_at.is_(None),
                    DiscoveredRepository.last_scanned_at < stale_before,
                ),
                DiscoveredRepository.is_archived.is_(False),
            )
            .order_by(DiscoveredRepository.github_stars.desc())
            .limit(limit)
        )
        with self._session("repos_needing_scan") as session:
            return [
                {"owner": r.owner, "repo": r.repo, "stars": r.github_stars}
                for r in session.execute(query).scalars().all()
            ]

    def mark_repo_scanned(
        self,
        owner: str,
        repo: str,
        skill_count: int,
        has_skill_md: bool,
        error: Optional[str] = None
    ) -> None:
        with self._session("mark_repo_scanned") as session:
            session.execute(
                update(DiscoveredRepository)
                .where(DiscoveredRepository.id == f"{owner}/{repo}")
                .values(
                    last_scanned_at=utcnow(),
                    skill_count=skill_count,
                    has_skill_md=has_skill_md,
                    last_scan_error=error,
                )
            )

    def upsert_curated_list(self, owner: str, repo: str, repo_count: int) -> None:
        stmt = pg_insert(CuratedList).values(
            id=f"{owner}/{repo}", owner=owner, repo=repo, repo_count=repo_count, last_parsed_at=utcnow()
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CuratedList.id],
            set_={"repo_count": stmt.excluded.repo_count, "last_parsed_at": stmt.excluded.last_parsed_at}
        )
        with self._session("upsert_curated_list") as session:
            session.execute(stmt)

    def discovery_stats(self) -> Dict[str, Any]:
        with self._session("discovery_stats") as session:
            total = session.scalar(select(func.count()).select_from(DiscoveredRepository))
            scanned = session.scalar(
                select(func.count()).where(DiscoveredRepository.last_scanned_at.is_not(None))
            )
            with_skills = session.scalar(
                select(func.count()).where(DiscoveredRepository.has_skill_md.is_(True))
            )
            by_source = session.execute(
                select(DiscoveredRepository.discovered_via, func.count())
                .group_by(DiscoveredRepository.discovered_via)
            ).all()
            return {
                "total": total or 0,
                "scanned": scanned or 0,
                "withSkills": with_skills or 0,
                "bySource": {source: count for source, count in by_source},
            }

    # =========================================================================
    # Curation
    # =========================================================================

    def catalog_snapshot(self) -> List[CatalogEntry]:
        columns = (
            Skill.id, Skill.name, Skill.github_owner, Skill.github_repo, Skill.skill_type,
            Skill.repo_skill_count, Skill.is_duplicate, Skill.canonical_skill_id,
            Skill.content_hash, Skill.raw_content, Skill.github_stars, Skill.github_forks,
            Skill.repo_created_at, Skill.created_at,
        )
        with self._session("catalog_snapshot") as session:
            rows = session.execute(select(*columns).where(Skill.is_blocked.is_(False))).all()
            return [
                CatalogEntry(
                    id=r.id,
                    name=r.name,
                    github_owner=r.github_owner,
                    github_repo=r.github_repo,
                    skill_type=r.skill_type,
                    repo_skill_count=r.repo_skill_count,
                    is_duplicate=r.is_duplicate,
                    canonical_skill_id=r.canonical_skill_id,
                    content_hash=r.content_hash,
                    raw_content=r.raw_content,
                    github_stars=r.github_stars or 0,
                    github_forks=r.github_forks or 0,
                    repo_created_at=r.repo_created_at,
                    created_at=r.created_at,
                )
                for r in rows
            ]

    def save_curation_updates(self, updates: Dict[str, Dict[str, Any]]) -> int:
        if not updates:
            return 0
        with self._session("save_curation_updates") as session:
            for skill_id, values in updates.items():
                allowed = {k: v for k, v in values.items() if k in CURATION_COLUMNS}
                session.execute(update(Skill).where(Skill.id == skill_id).values(**allowed))
        return len(updates)

    def category_links(self) -> List[Tuple[str, str]]:
        with self._session("category_links") as session:
            return [
                (skill_id, category_id)
                for skill_id, category_id in session.execute(
                    select(SkillCategory.skill_id, SkillCategory.category_id)
                ).all()
            ]

    def category_ids(self) -> List[str]:
        with self._session("category_ids") as session:
            return list(session.execute(select(Category.id)).scalars().all())

    def set_category_counts(self, counts: Dict[str, int]) -> None:
        with self._session("set_category_counts") as session:
            session.execute(update(Category).values(skill_count=0))
            for category_id, count in counts.items():
                session.execute(
                    update(Category).where(Category.id == category_id).values(skill_count=count)
                )

    def ensure_categories(self) -> None:
        """Insert any missing category rows."""
        stmt = pg_insert(Category).values(
            [{"id": category_id, "name": name, "skill_count": 0} for category_id, name in CATEGORY_NAMES.items()]
        ).on_conflict_do_nothing()
        with self._session("ensure_categories") as session:
            session.execute(stmt)

    # =========================================================================
    # Reporting
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        with self._session("stats") as session:
            total = session.scalar(select(func.count()).select_from(Skill)) or 0
            blocked = session.scalar(select(func.count()).where(Skill.is_blocked.is_(True))) or 0
            duplicates = session.scalar(select(func.count()).where(Skill.is_duplicate.is_(True))) or 0
            browse_ready = session.scalar(
                select(func.count()).where(
                    Skill.is_blocked.is_(False),
                    Skill.is_duplicate.is_(False),
                    Skill.skill_type.in_(BROWSE_READY_TYPES),
                )
            ) or 0
            by_format = session.execute(
                select(Skill.source_format, func.count()).group_by(Skill.source_format)
            ).all()
            by_type = session.execute(
                select(Skill.skill_type, func.count()).group_by(Skill.skill_type)
            ).all()
            return {
                "total": total,
                "blocked": blocked,
                "duplicates": duplicates,
                "browseReady": browse_ready,
                "byFormat": {fmt: count for fmt, count in by_format},
                "byType": {(t or "unclassified"): count for t, count in by_type},
            }


__all__ = ["CatalogRepository", "SqlCatalogRepository", "SKILL_MUTABLE_COLUMNS", "utcnow"]
