# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Skill Catalog Models - indexed instruction files and their categories.

A skill record is keyed by ``owner/repo/skill-name`` (plus a ``~format``
suffix for non-SKILL.md formats) and carries both the parsed metadata and
the curation fields (classification, duplicate resolution).
"""
from sqlalchemy import Column, Integer, String, JSON, DateTime, Text, ForeignKey, Boolean
from sqlalchemy.orm import validates, relationship
from db.database import Base
import datetime


class Skill(Base):
    """
    Catalog record for one discovered instruction file.

    ``canonical_skill_id`` is only set when ``is_duplicate`` is true and
    always points at a non-duplicate record of the same content hash.
    """
    __tablename__ = "skills"

    # Identity
    id = Column(String(400), primary_key=True)  # owner/repo/skill-name[~format]
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")

    # Source location
    github_owner = Column(String(100), nullable=False, index=True)
    github_repo = Column(String(200), nullable=False, index=True)
    skill_path = Column(String(500), nullable=False, default=".")
    branch = Column(String(200), nullable=True)
    source_format = Column(String(50), nullable=False, default="skill.md")

    # Parsed metadata
    version = Column(String(50), nullable=True)
    license = Column(String(100), nullable=True)
    author = Column(String(200), nullable=True)
    homepage = Column(String(500), nullable=True)
    compatibility = Column(JSON, nullable=True)  # {platforms, requires, minVersion}
    triggers = Column(JSON, nullable=True)  # {filePatterns, keywords, languages}
    extra_metadata = Column(JSON, nullable=True)  # Unrecognized frontmatter keys

    # Repository signals
    github_stars = Column(Integer, default=0, nullable=False)
    github_forks = Column(Integer, default=0, nullable=False)
    repo_created_at = Column(DateTime(timezone=True), nullable=True)
    download_count = Column(Integer, default=0, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)

    # Curation
    skill_type = Column(String(20), nullable=True, index=True)  # standalone, collection, aggregator, project-bound
    repo_skill_count = Column(Integer, nullable=True)
    is_duplicate = Column(Boolean, default=False, nullable=False, index=True)
    canonical_skill_id = Column(String(400), nullable=True)
    is_blocked = Column(Boolean, default=False, nullable=False, index=True)

    # Content
    content_hash = Column(String(100), nullable=True, index=True)
    raw_content = Column(Text, nullable=True)
    security_score = Column(Integer, nullable=True)
    security_status = Column(String(20), nullable=True)

    # Timestamps
    indexed_at = Column(DateTime(timezone=True), default=datetime.datetime.utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=datetime.datetime.utcnow,
        onupdate=datetime.datetime.utcnow,
        nullable=False
    )

    # Relationships
    categories = relationship("SkillCategory", back_populates="skill", cascade="all, delete-orphan")

    @validates('id')
    def validate_id(self, key, value):
        """Ensure the id has owner, repo and name segments."""
        if not value or value.count('/') < 2:
            raise ValueError("Skill id must look like owner/repo/name")
        return value

    def __repr__(self):
        return f"<Skill(id='{self.id}', type={self.skill_type}, duplicate={self.is_duplicate})>"


class Category(Base):
    """Browse category with a denormalized count of browse-ready skills."""
    __tablename__ = "categories"

    id = Column(String(50), primary_key=True)  # e.g. cat-ai-llm
    name = Column(String(100), nullable=False)
    skill_count = Column(Integer, default=0, nullable=False)

    skills = relationship("SkillCategory", back_populates="category", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Category(id='{self.id}', skill_count={self.skill_count})>"


class SkillCategory(Base):
    """Link table between skills and categories."""
    __tablename__ = "skill_categories"

    skill_id = Column(String(400), ForeignKey("skills.id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(String(50), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True)

    skill = relationship("Skill", back_populates="categories")
    category = relationship("Category", back_populates="skills")
