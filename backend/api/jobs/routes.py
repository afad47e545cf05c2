# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Job Queue API

Endpoints:
- POST /api/jobs - Submit a job
- GET /api/jobs - List recent jobs
- GET /api/jobs/stats - Job counts per state
- GET /api/jobs/{job_id} - Job status, progress and result
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from api.dependencies import get_queue
from core.exceptions import BadRequestError, ResourceNotFoundError
from core.task_queue import JobPriority, default_priority
from models.enums import JobState, JobType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


# Pydantic Schemas
class JobSubmission(BaseModel):
    job_type: JobType
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[int] = Field(None, ge=JobPriority.LOW, le=JobPriority.URGENT)


class JobSubmitted(BaseModel):
    job_id: int
    job_type: str
    priority: int


class JobListResponse(BaseModel):
    total: int
    jobs: List[Dict[str, Any]]


# Endpoints
@router.post("", response_model=JobSubmitted, status_code=202)
async def submit_job(submission: JobSubmission, queue=Depends(get_queue)):
    """Enqueue a named job with its options."""
    job_type = submission.job_type.value
    if job_type == JobType.INDEX_SKILL.value and not submission.payload.get("source"):
        raise BadRequestError("index-skill requires payload.source", detail={"job_type": job_type})

    priority = submission.priority if submission.priority is not None else default_priority(job_type)
    try:
        job_id = queue.enqueue(job_type, submission.payload, priority=priority)
    except ValueError as e:
        raise BadRequestError(str(e), detail={"job_type": job_type})

    return JobSubmitted(job_id=job_id, job_type=job_type, priority=priority)


@router.get("", response_model=JobListResponse)
async def list_jobs(
    state: Optional[JobState] = None,
    limit: int = Query(50, ge=1, le=500),
    queue=Depends(get_queue)
):
    """List recent jobs, newest first."""
    jobs = queue.list_jobs(state.value if state else None, limit)
    return JobListResponse(total=len(jobs), jobs=jobs)


@router.get("/stats")
async def job_stats(queue=Depends(get_queue)):
    """Job counts per state and worker pool status."""
    return queue.stats()


@router.get("/{job_id}")
async def get_job(job_id: int = Path(..., ge=1), queue=Depends(get_queue)):
    """Get one job's state, progress and result."""
    job = queue.get_status(job_id)
    if not job:
        raise ResourceNotFoundError("Job", job_id)
    return job
