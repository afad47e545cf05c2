# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Curation API

POST /api/curation/run either queues a curate job (default) or, with
``background=false``, runs the engine inline and returns its report.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from api.dependencies import get_context, get_queue
from core.curation.engine import CurationEngine
from models.enums import JobType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/curation", tags=["curation"])


class CurationRequest(BaseModel):
    dry_run: bool = False
    step: Optional[int] = Field(None, ge=1, le=8)
    background: bool = True


@router.post("/run")
async def run_curation(body: CurationRequest, request: Request, queue=Depends(get_queue)):
    """Run or enqueue the curation pass."""
    if body.background:
        payload = {"dryRun": body.dry_run}
        if body.step is not None:
            payload["step"] = body.step
        job_id = queue.enqueue(JobType.CURATE.value, payload)
        return {"queued": True, "job_id": job_id}

    context = get_context(request)
    logger.info(f"Running curation inline (dry_run={body.dry_run}, step={body.step})")
    report = CurationEngine(context.repository).run(dry_run=body.dry_run, step=body.step)
    return {"queued": False, "report": report.to_dict()}
