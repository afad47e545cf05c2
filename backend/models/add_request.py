# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Add Request Model

User-submitted "index this repository" requests. They are written by the web
layer and consumed by the process-add-requests job.
"""

import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean
from db.database import Base


class AddRequest(Base):
    """Request to add a repository to the catalog."""
    __tablename__ = "add_requests"

    id = Column(String(100), primary_key=True)
    repository_url = Column(String(500), nullable=False)
    skill_path = Column(Text, nullable=True)  # Comma-separated paths detected at submission
    has_skill_md = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    indexed_skill_id = Column(Text, nullable=True)  # Comma-separated skill ids
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AddRequest(id='{self.id}', status='{self.status}')>"
