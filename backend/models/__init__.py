# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Database models for the skill catalog"""
from .skill import Skill, Category, SkillCategory
from .discovered_repo import DiscoveredRepository, CuratedList
from .add_request import AddRequest
from .indexing_job import IndexingJob
from .enums import SkillType, SecurityStatus, JobState, JobType, AddRequestStatus, DiscoverySource

__all__ = [
    "Skill",
    "Category",
    "SkillCategory",
    "DiscoveredRepository",
    "CuratedList",
    "AddRequest",
    "IndexingJob",
    "SkillType",
    "SecurityStatus",
    "JobState",
    "JobType",
    "AddRequestStatus",
    "DiscoverySource",
]
