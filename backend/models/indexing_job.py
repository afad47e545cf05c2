# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Indexing Job Model

Durable queue rows for crawl, discovery, deep-scan and curation jobs.

- Claimed with SELECT FOR UPDATE SKIP LOCKED
- Retried with exponential backoff through ``available_at``
- Completed and failed rows are evicted by the retention sweep
- Active rows whose worker stopped heartbeating are recovered as failed attempts

Job Lifecycle:
1. waiting - Job created (or scheduled for retry), waiting for a worker
2. active - Worker claimed job, executing
3. completed - Handler returned a result
4. failed - Handler raised on its final attempt
"""

import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from db.database import Base


class IndexingJob(Base):
    """
    Queued indexing job.

    Attributes:
        id: Unique job identifier
        job_type: Job type name (e.g., 'full-crawl', 'deep-scan')
        payload: Job options (JSON)
        priority: Higher = more urgent
        state: waiting, active, completed or failed
        progress: Coarse handler progress, 0-100
        attempts: Number of attempts started
        max_attempts: Attempts before the job is marked failed
        available_at: Earliest time the job may be claimed
        result: Handler output (JSON, set on completion)
        error: Last error message
        heartbeat_at: Last liveness signal from the worker running the job
    """
    __tablename__ = "indexing_jobs"

    id = Column(Integer, primary_key=True, index=True)

    job_type = Column(String(50), nullable=False, index=True)
    payload = Column(JSONB, nullable=False, default=dict)
    priority = Column(Integer, nullable=False, default=50, index=True)

    state = Column(String(20), nullable=False, default="waiting", index=True)
    progress = Column(Integer, nullable=False, default=0)

    result = Column(JSONB, nullable=True)
    error = Column(Text, nullable=True)

    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    available_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.datetime.utcnow,
        index=True
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.datetime.utcnow,
        index=True
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    heartbeat_at = Column(DateTime(timezone=True), nullable=True)  # Refreshed by the running worker
    finished_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self):
        return (
            f"<IndexingJob(id={self.id}, type='{self.job_type}', "
            f"state='{self.state}', attempts={self.attempts})>"
        )

    @property
    def duration(self) -> float:
        """Seconds between start and finish, or None while running."""
        if not self.started_at or not self.finished_at:
            return None

        delta = self.finished_at - self.started_at
        return delta.total_seconds()

    @property
    def is_terminal(self) -> bool:
        """Check if job is in a terminal state."""
        return self.state in ("completed", "failed")

    def to_dict(self) -> dict:
        """
        Convert job to dictionary for API responses.

        Returns:
            dict: Job data with all fields
        """
        return {
            "id": self.id,
            "job_type": self.job_type,
            "payload": self.payload,
            "priority": self.priority,
            "state": self.state,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "available_at": self.available_at.isoformat() if self.available_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "heartbeat_at": self.heartbeat_at.isoformat() if self.heartbeat_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration": self.duration
        }
