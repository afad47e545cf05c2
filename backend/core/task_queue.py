# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
PostgreSQL-Backed Job Queue


A durable queue for indexing jobs using PostgreSQL as the backend (no
Redis/Celery needed for a single indexer deployment).

Key Features:
- PostgreSQL-backed (uses SELECT FOR UPDATE SKIP LOCKED for queue semantics)
- Worker pool with a fixed top-level concurrency
- Priority-based job selection
- Automatic retry with exponential backoff (``available_at``)
- Coarse progress reporting (0-100)
- Retention sweep for completed and failed jobs

Architecture:
- JobQueue: Enqueue, claim, complete/fail, status and retention
- JobWorker: Claims and executes jobs with the shared IndexerContext
- JobHandlerRegistry: Job type -> handler

Usage:
    from core.task_queue import JobQueue, JobPriority

    queue = JobQueue()
    job_id = queue.enqueue("deep-scan", {"scanLimit": 100})
    queue.start_workers(context, concurrency=5)
"""

import asyncio
import datetime
import logging
import time
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, text, update

from core.session_manager import session_scope
from models.enums import JobState, JobType
from models.indexing_job import IndexingJob

logger = logging.getLogger(__name__)


# =============================================================================
# Job Priority Levels
# =============================================================================

class JobPriority(IntEnum):
    """
    Job priority levels.

    Higher priority jobs are claimed first.
    """
    LOW = 25
    NORMAL = 50
    HIGH = 75
    URGENT = 100


DEFAULT_PRIORITIES = {
    JobType.INDEX_SKILL.value: JobPriority.HIGH,
    JobType.INCREMENTAL.value: JobPriority.NORMAL,
}


def default_priority(job_type: str) -> int:
    """Single-skill jobs jump the queue; bulk jobs run behind incremental crawls."""
    return int(DEFAULT_PRIORITIES.get(job_type, JobPriority.LOW))


def retry_delay(attempts: int, backoff_seconds: float) -> float:
    """Delay before the next attempt after ``attempts`` failed ones."""
    return backoff_seconds * (2 ** max(attempts - 1, 0))


STALLED_ERROR = "Job stalled: worker stopped before the job finished"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# =============================================================================
# Job Handler Registry
# =============================================================================

class JobHandlerRegistry:
    """
    Registry of job type handlers.

    Handler signature: async def handler(ctx, payload: dict, reporter) -> dict
    """

    def __init__(self):
        self._handlers: Dict[str, Callable] = {}

    def register(self, job_type: str, handler: Callable):
        if job_type in self._handlers:
            logger.warning(f"Overwriting existing handler for job type '{job_type}'")

        self._handlers[job_type] = handler
        logger.debug(f"Registered handler for job type '{job_type}'")

    def get(self, job_type: str) -> Optional[Callable]:
        return self._handlers.get(job_type)

    def has_handler(self, job_type: str) -> bool:
        return job_type in self._handlers

    def list_handlers(self) -> List[str]:
        return list(self._handlers.keys())


# Global handler registry (populated by core.task_handlers at import)
_handler_registry = JobHandlerRegistry()


def get_registry() -> JobHandlerRegistry:
    return _handler_registry


def register_handler(job_type: str):
    """
    Decorator to register a job handler.

    Usage:
        @register_handler("deep-scan")
        async def handle_deep_scan(ctx, payload: dict, reporter) -> dict:
            ...
    """
    def decorator(func: Callable):
        _handler_registry.register(job_type, func)
        return func
    return decorator


# =============================================================================
# Progress Reporter
# =============================================================================

class ProgressReporter:
    """
    Handed to handlers so they can publish coarse progress.

    Progress only moves forward; concurrent per-item updates that arrive
    out of order are dropped.
    """

    def __init__(self, queue: "JobQueue", job_id: int):
        self.queue = queue
        self.job_id = job_id
        self.progress = 0

    async def update(self, progress: int):
        progress = max(0, min(100, int(progress)))
        if progress <= self.progress:
            return
        self.progress = progress
        self.queue.set_progress(self.job_id, progress)


# =============================================================================
# Job Worker
# =============================================================================

class JobWorker:
    """
    Worker that claims and executes jobs from the queue.

    Each worker runs one job at a time; the pool size is the top-level
    job concurrency.
    """

    def __init__(
        self,
        worker_id: int,
        queue: "JobQueue",
        context,
        poll_interval: float = 1.0,
        heartbeat_interval: float = 60.0
    ):
        self.worker_id = worker_id
        self.queue = queue
        self.context = context
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.running = False
        self.current_job_id: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start worker loop."""
        self.running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Worker {self.worker_id} started")

    async def stop(self, timeout: float = 30.0):
        """
        Stop worker gracefully.

        Args:
            timeout: Maximum time to wait for the current job to complete
        """
        logger.info(f"Stopping worker {self.worker_id}...")
        self.running = False

        if self._task and not self._task.done():
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Worker {self.worker_id} did not stop within timeout, cancelling...")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        logger.info(f"Worker {self.worker_id} stopped")

    async def _run_loop(self):
        while self.running:
            try:
                job = self.queue.claim()
                if job:
                    await self.execute(job)
                else:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.error(
                    f"Worker {self.worker_id} encountered error in main loop: {e}",
                    exc_info=True
                )
                await asyncio.sleep(5.0)

        logger.info(f"Worker {self.worker_id} loop exited")

    async def _heartbeat(self, job_id: int):
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.queue.heartbeat(job_id)
            except Exception as e:
                logger.warning(f"Heartbeat for job {job_id} failed: {e}")

    async def execute(self, job: Dict[str, Any]) -> str:
        """
        Execute a claimed job and record its outcome.

        Returns:
            The job's new state
        """
        job_id = job["id"]
        job_type = job["job_type"]
        self.current_job_id = job_id
        start_time = time.time()
        log_extra = {"job_id": job_id, "job_type": job_type, "attempt": job["attempts"]}

        logger.info(f"Worker {self.worker_id} executing job {job_id} (type: {job_type})", extra=log_extra)
        heartbeat = asyncio.create_task(self._heartbeat(job_id))

        try:
            handler = self.queue.registry.get(job_type)
            if not handler:
                raise ValueError(f"No handler registered for job type '{job_type}'")

            reporter = ProgressReporter(self.queue, job_id)
            result = await handler(self.context, job.get("payload") or {}, reporter)

            self.queue.complete(job_id, result or {})
            logger.info(
                f"Worker {self.worker_id} completed job {job_id} "
                f"(type: {job_type}, duration: {time.time() - start_time:.2f}s)",
                extra=log_extra
            )
            return JobState.COMPLETED.value

        except Exception as e:
            logger.error(
                f"Worker {self.worker_id} failed job {job_id} "
                f"(type: {job_type}, duration: {time.time() - start_time:.2f}s): {e}",
                exc_info=True,
                extra=log_extra
            )
            return self.queue.fail(job_id, f"{type(e).__name__}: {e}")

        finally:
            heartbeat.cancel()
            self.current_job_id = None


# =============================================================================
# Job Queue
# =============================================================================

class JobQueue:
    """
    PostgreSQL-backed job queue with worker pool.

    Constructed once per process and passed to the API, CLI and scheduler.
    """

    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        registry: Optional[JobHandlerRegistry] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 5.0,
        completed_retention_hours: int = 24,
        completed_retention_count: int = 1000,
        failed_retention_days: int = 7,
        heartbeat_interval: float = 60.0,
        stall_timeout_seconds: float = 600.0
    ):
        self.session_factory = session_factory
        self.registry = registry or _handler_registry
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.completed_retention_hours = completed_retention_hours
        self.completed_retention_count = completed_retention_count
        self.failed_retention_days = failed_retention_days
        self.heartbeat_interval = heartbeat_interval
        self.stall_timeout_seconds = stall_timeout_seconds
        self.workers: List[JobWorker] = []
        self.running = False

    @classmethod
    def from_settings(cls, settings, session_factory: Optional[Callable] = None) -> "JobQueue":
        return cls(
            session_factory=session_factory,
            max_attempts=settings.job_max_attempts,
            backoff_seconds=settings.job_backoff_seconds,
            completed_retention_hours=settings.completed_job_retention_hours,
            completed_retention_count=settings.completed_job_retention_count,
            failed_retention_days=settings.failed_job_retention_days,
            heartbeat_interval=settings.job_heartbeat_seconds,
            stall_timeout_seconds=settings.job_stall_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Worker pool
    # -------------------------------------------------------------------------

    async def start_workers(self, context, concurrency: int = 5):
        """
        Start the worker pool.

        Args:
            context: IndexerContext handed to every handler
            concurrency: Number of jobs executed at once
        """
        if self.running:
            logger.warning("Workers already running")
            return

        recovered = self.recover_stalled()
        if recovered:
            logger.info(f"Recovered {recovered} stalled job(s) before starting workers")

        logger.info(f"Starting {concurrency} workers...")
        self.running = True

        for i in range(concurrency):
            worker = JobWorker(worker_id=i, queue=self, context=context, heartbeat_interval=self.heartbeat_interval)
            self.workers.append(worker)
            await worker.start()

        logger.info(f"Started {concurrency} workers")

    async def shutdown(self, timeout: float = 30.0):
        """Gracefully stop all workers."""
        if not self.running:
            return

        logger.info(f"Shutting down {len(self.workers)} workers...")

        stop_tasks = [worker.stop(timeout=timeout) for worker in self.workers]
        await asyncio.gather(*stop_tasks, return_exceptions=True)

        self.workers.clear()
        self.running = False

        logger.info("All workers stopped")

    # -------------------------------------------------------------------------
    # Queue operations
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        job_type: str,
        payload: Optional[Dict[str, Any]] = None,
        priority: Optional[int] = None,
        max_attempts: Optional[int] = None
    ) -> int:
        """
        Enqueue a new job.

        Args:
            job_type: Job type (must have a registered handler)
            payload: Job options (must be JSON-serializable)
            priority: Job priority, defaults by job type
            max_attempts: Attempts before the job is marked failed

        Returns:
            Job ID

        Raises:
            ValueError: If no handler is registered for the job type
        """
        if not self.registry.has_handler(job_type):
            raise ValueError(
                f"No handler registered for job type '{job_type}'. "
                f"Available types: {self.registry.list_handlers()}"
            )

        if priority is None:
            priority = default_priority(job_type)

        with session_scope("enqueue_job", self.session_factory) as db:
            job = IndexingJob(
                job_type=job_type,
                payload=payload or {},
                priority=int(priority),
                max_attempts=max_attempts or self.max_attempts,
                state=JobState.WAITING.value,
                available_at=utcnow(),
                created_at=utcnow()
            )
            db.add(job)
            db.flush()
            job_id = job.id

        logger.info(
            f"Enqueued job {job_id} (type: {job_type}, priority: {priority})",
            extra={"job_id": job_id, "job_type": job_type, "priority": priority}
        )
        return job_id

    def claim(self) -> Optional[Dict[str, Any]]:
        """
        Atomically claim the next runnable job.

        Returns:
            Job dict or None if nothing is runnable
        """
        with session_scope("claim_job", self.session_factory) as db:
            row = db.execute(text("""
                UPDATE indexing_jobs
                SET state = 'active',
                    started_at = NOW(),
                    heartbeat_at = NOW(),
                    finished_at = NULL,
                    attempts = attempts + 1
                WHERE id = (
                    SELECT id
                    FROM indexing_jobs
                    WHERE state = 'waiting'
                      AND available_at <= NOW()
                    ORDER BY priority DESC, created_at ASC
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id
            """)).fetchone()

            if not row:
                return None

            job = db.get(IndexingJob, row[0])
            logger.info(
                f"Claimed job {job.id} (type: {job.job_type}, priority: {job.priority}, "
                f"attempt {job.attempts}/{job.max_attempts})"
            )
            return job.to_dict()

    def set_progress(self, job_id: int, progress: int):
        with session_scope("job_progress", self.session_factory) as db:
            job = db.get(IndexingJob, job_id)
            if job:
                job.progress = progress

    def complete(self, job_id: int, result: Dict[str, Any]):
        with session_scope("complete_job", self.session_factory) as db:
            job = db.get(IndexingJob, job_id)
            if job:
                job.state = JobState.COMPLETED.value
                job.progress = 100
                job.result = result
                job.error = None
                job.finished_at = utcnow()

    def fail(self, job_id: int, error: str) -> str:
        """
        Record a failed attempt: reschedule with backoff, or mark failed.

        Returns:
            The job's new state
        """
        with session_scope("fail_job", self.session_factory) as db:
            job = db.get(IndexingJob, job_id)
            if not job:
                return JobState.FAILED.value

            self._record_failure(job, error)
            return job.state

    def _record_failure(self, job: IndexingJob, error: str):
        job.error = error
        job.heartbeat_at = None
        if job.attempts < job.max_attempts:
            delay = retry_delay(job.attempts, self.backoff_seconds)
            job.state = JobState.WAITING.value
            job.started_at = None
            job.available_at = utcnow() + datetime.timedelta(seconds=delay)
            logger.info(
                f"Job {job.id} will be retried in {delay:.0f}s "
                f"(attempt {job.attempts + 1}/{job.max_attempts})"
            )
        else:
            job.state = JobState.FAILED.value
            job.finished_at = utcnow()
            logger.error(f"Job {job.id} failed after {job.attempts} attempts")

    def heartbeat(self, job_id: int):
        """Mark an active job as still being worked on."""
        with session_scope("job_heartbeat", self.session_factory) as db:
            db.execute(
                update(IndexingJob)
                .where(IndexingJob.id == job_id, IndexingJob.state == JobState.ACTIVE.value)
                .values(heartbeat_at=utcnow())
            )

    def recover_stalled(self) -> int:
        """
        Return jobs abandoned by a dead worker to the queue.

        An active job is stalled when its last heartbeat (or its claim, when it
        never sent one) is older than ``stall_timeout_seconds``. Each stalled
        job counts as a failed attempt: retried with backoff, or failed once
        its attempts are used up.

        Returns:
            Number of jobs recovered
        """
        cutoff = utcnow() - datetime.timedelta(seconds=self.stall_timeout_seconds)
        with session_scope("recover_stalled_jobs", self.session_factory) as db:
            stalled = (
                db.query(IndexingJob)
                .filter(
                    IndexingJob.state == JobState.ACTIVE.value,
                    func.coalesce(IndexingJob.heartbeat_at, IndexingJob.started_at) < cutoff,
                )
                .with_for_update(skip_locked=True)
                .all()
            )
            for job in stalled:
                logger.warning(f"Job {job.id} ({job.job_type}) stalled on attempt {job.attempts}")
                self._record_failure(job, STALLED_ERROR)
        return len(stalled)

    def get_status(self, job_id: int) -> Optional[Dict[str, Any]]:
        with session_scope("job_status", self.session_factory) as db:
            job = db.get(IndexingJob, job_id)
            return job.to_dict() if job else None

    def list_jobs(self, state: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        with session_scope("list_jobs", self.session_factory) as db:
            query = db.query(IndexingJob)
            if state:
                query = query.filter(IndexingJob.state == state)
            jobs = query.order_by(IndexingJob.created_at.desc()).limit(limit).all()
            return [job.to_dict() for job in jobs]

    def stats(self) -> Dict[str, Any]:
        """Job counts per state plus worker pool status."""
        with session_scope("job_stats", self.session_factory) as db:
            counts = dict(
                db.query(IndexingJob.state, func.count(IndexingJob.id))
                .group_by(IndexingJob.state)
                .all()
            )

        stats: Dict[str, Any] = {state.value: counts.get(state.value, 0) for state in JobState}
        stats["workers"] = len(self.workers)
        stats["workers_running"] = self.running
        return stats

    def prune(self) -> int:
        """
        Evict finished jobs past retention.

        Stalled active jobs are recovered first (see recover_stalled).

        Completed jobs are kept for ``completed_retention_hours`` and at most
        ``completed_retention_count`` of them; failed jobs for
        ``failed_retention_days``.

        Returns:
            Number of rows deleted
        """
        recovered = self.recover_stalled()
        if recovered:
            logger.info(f"Recovered {recovered} stalled job(s)")

        with session_scope("prune_jobs", self.session_factory) as db:
            completed = db.execute(text("""
                DELETE FROM indexing_jobs
                WHERE state = 'completed'
                  AND (
                    finished_at < NOW() - make_interval(hours => :hours)
                    OR id NOT IN (
                        SELECT id FROM indexing_jobs
                        WHERE state = 'completed'
                        ORDER BY finished_at DESC
                        LIMIT :keep
                    )
                  )
            """), {"hours": self.completed_retention_hours, "keep": self.completed_retention_count})

            failed = db.execute(text("""
                DELETE FROM indexing_jobs
                WHERE state = 'failed'
                  AND finished_at < NOW() - make_interval(days => :days)
            """), {"days": self.failed_retention_days})

            removed = (completed.rowcount or 0) + (failed.rowcount or 0)

        if removed:
            logger.info(f"Pruned {removed} finished jobs")
        return removed


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "JobQueue",
    "JobWorker",
    "JobPriority",
    "JobHandlerRegistry",
    "ProgressReporter",
    "register_handler",
    "get_registry",
    "default_priority",
    "retry_delay",
]
