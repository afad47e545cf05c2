# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Recurring Job Schedule

Polling-based cron scheduler that enqueues the named indexing jobs on fixed
schedules.

Features:
- 30-second polling interval
- Next run calculated with croniter in the configured timezone (pytz)
- register() clears previously registered entries first, so re-registering
  never duplicates a schedule
- Hourly retention sweep of finished jobs (also recovers stalled ones)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import pytz
from croniter import croniter

from models.enums import JobType

logger = logging.getLogger(__name__)

PRUNE_INTERVAL_SECONDS = 3600


@dataclass
class ScheduleEntry:
    """One recurring job."""
    name: str
    job_type: str
    cron_expression: str
    payload: Dict[str, Any] = field(default_factory=dict)
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "job_type": self.job_type,
            "cron": self.cron_expression,
            "payload": self.payload,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }


DEFAULT_SCHEDULE = (
    ScheduleEntry("daily-awesome-lists", JobType.AWESOME_LISTS.value, "0 1 * * *"),
    ScheduleEntry("daily-incremental", JobType.INCREMENTAL.value, "0 2 * * *"),
    ScheduleEntry("daily-deep-scan", JobType.DEEP_SCAN.value, "0 3 * * *", {"scanLimit": 100}),
    ScheduleEntry("weekly-discovery", JobType.DISCOVER_REPOS.value, "0 5 * * 0"),
    ScheduleEntry("weekly-full-crawl", JobType.FULL_CRAWL.value, "0 6 * * 0"),
    ScheduleEntry("add-requests", JobType.PROCESS_ADD_REQUESTS.value, "30 */6 * * *"),
)


def calculate_next_run(cron_expression: str, tz: str, now: Optional[datetime] = None) -> datetime:
    """
    Calculate the next run time from a cron expression.

    Args:
        cron_expression: Standard 5-field cron expression
        tz: Timezone name the expression is interpreted in
        now: Reference time (default: current time)

    Returns:
        Next run datetime in UTC

    Raises:
        ValueError: Invalid cron expression or timezone
    """
    if not croniter.is_valid(cron_expression):
        raise ValueError(f"Invalid cron expression: {cron_expression}")
    try:
        timezone_obj = pytz.timezone(tz)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone: {tz}")

    now = (now or datetime.now(pytz.UTC)).astimezone(timezone_obj)
    next_run_local = croniter(cron_expression, now).get_next(datetime)

    if next_run_local.tzinfo is None:
        next_run_local = timezone_obj.localize(next_run_local)

    return next_run_local.astimezone(pytz.UTC)


class RecurringSchedule:
    """
    Polling scheduler that re-submits recurring jobs to the JobQueue.

    Entries live in process memory; calling register() replaces them all.
    """

    def __init__(self, queue, timezone: str = "UTC", poll_interval: int = 30):
        self.queue = queue
        self.timezone = timezone
        self.poll_interval = poll_interval
        self.entries: Dict[str, ScheduleEntry] = {}
        self._is_running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._last_prune = 0.0

    @classmethod
    def from_settings(cls, settings, queue) -> "RecurringSchedule":
        return cls(queue, timezone=settings.schedule_timezone)

    # =========================================================================
    # Registration
    # =========================================================================

    def clear(self):
        if self.entries:
            logger.info(f"Removing {len(self.entries)} recurring job(s)")
        self.entries = {}

    def register(self, entries: Sequence[ScheduleEntry] = DEFAULT_SCHEDULE, now: Optional[datetime] = None) -> List[ScheduleEntry]:
        """
        Replace the recurring entries.

        Raises:
            ValueError: An entry has an invalid cron expression
        """
        self.clear()
        for template in entries:
            entry = ScheduleEntry(
                name=template.name,
                job_type=template.job_type,
                cron_expression=template.cron_expression,
                payload=dict(template.payload),
            )
            entry.next_run_at = calculate_next_run(entry.cron_expression, self.timezone, now)
            self.entries[entry.name] = entry
            logger.info(f"Recurring job '{entry.name}' ({entry.job_type}) at '{entry.cron_expression}', next {entry.next_run_at}")
        return list(self.entries.values())

    # =========================================================================
    # Polling
    # =========================================================================

    async def start(self):
        """Start the scheduler polling loop."""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self._is_running = True
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("Recurring schedule started")

    async def stop(self):
        """Stop the scheduler polling loop."""
        if not self._is_running:
            return

        self._is_running = False

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        logger.info("Recurring schedule stopped")

    async def _poll_loop(self):
        logger.info(f"Starting scheduler poll loop (interval: {self.poll_interval}s)")

        while self._is_running:
            try:
                self.run_due()
                if time.time() - self._last_prune >= PRUNE_INTERVAL_SECONDS:
                    self._last_prune = time.time()
                    self.queue.prune()
                await asyncio.sleep(self.poll_interval)

            except asyncio.CancelledError:
                logger.info("Scheduler poll loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in scheduler poll loop: {e}", exc_info=True)
                await asyncio.sleep(self.poll_interval)

    def run_due(self, now: Optional[datetime] = None) -> List[int]:
        """
        Enqueue every entry whose next run time has passed.

        Returns:
            IDs of the enqueued jobs
        """
        now = now or datetime.now(pytz.UTC)
        job_ids: List[int] = []

        for entry in self.entries.values():
            if entry.next_run_at is None or entry.next_run_at > now:
                continue

            try:
                job_id = self.queue.enqueue(entry.job_type, dict(entry.payload))
                job_ids.append(job_id)
                logger.info(f"Recurring job '{entry.name}' enqueued (job: {job_id})")
            except Exception as e:
                logger.error(f"Error enqueueing recurring job '{entry.name}': {e}", exc_info=True)

            entry.last_run_at = now
            entry.next_run_at = calculate_next_run(entry.cron_expression, self.timezone, now)

        return job_ids

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_running": self._is_running,
            "poll_interval": self.poll_interval,
            "timezone": self.timezone,
            "entries": [entry.to_dict() for entry in self.entries.values()],
        }


__all__ = ["RecurringSchedule", "ScheduleEntry", "DEFAULT_SCHEDULE", "calculate_next_run"]
