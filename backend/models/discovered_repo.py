# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Discovery Models

Repositories found by the discovery strategies, and the curated lists they
are harvested from. Rows are never deleted; deep-scan cadence is driven by
``last_scanned_at``.
"""

import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from db.database import Base


class DiscoveredRepository(Base):
    """A repository that may contain instruction files."""
    __tablename__ = "discovered_repos"

    id = Column(String(300), primary_key=True)  # owner/repo
    owner = Column(String(100), nullable=False, index=True)
    repo = Column(String(200), nullable=False)
    discovered_via = Column(String(50), nullable=False)
    source_url = Column(String(500), nullable=True)

    # Deep-scan results
    last_scanned_at = Column(DateTime(timezone=True), nullable=True, index=True)
    skill_count = Column(Integer, default=0, nullable=False)
    has_skill_md = Column(Boolean, default=False, nullable=False)
    last_scan_error = Column(Text, nullable=True)

    # Repository signals
    github_stars = Column(Integer, default=0, nullable=False, index=True)
    github_forks = Column(Integer, default=0, nullable=False)
    default_branch = Column(String(200), nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=datetime.datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=datetime.datetime.utcnow,
        onupdate=datetime.datetime.utcnow,
        nullable=False
    )

    def __repr__(self):
        return f"<DiscoveredRepository(id='{self.id}', via='{self.discovered_via}', skills={self.skill_count})>"


class CuratedList(Base):
    """A curated "awesome" list that is periodically re-parsed for repository references."""
    __tablename__ = "curated_lists"

    id = Column(String(300), primary_key=True)  # owner/repo
    owner = Column(String(100), nullable=False)
    repo = Column(String(200), nullable=False)
    index_path = Column(String(200), nullable=False, default="README.md")
    last_parsed_at = Column(DateTime(timezone=True), nullable=True)
    repo_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<CuratedList(id='{self.id}', repos={self.repo_count})>"
