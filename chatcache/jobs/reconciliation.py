"""Periodic reconciliation of cached messages into the durable store.

Cached lists are copies, but a detached cache append can land while the
durable write path is degraded or a message can be cached by a writer that
pre-assigned its id. Before a cached list expires, the job copies every
message the durable store does not know about, preserving id and timestamp.

Each tick:
    1. Scan the per-user key prefix and keep users whose list expires within
       ``ttl_threshold`` seconds.
    2. For each candidate, diff cached ids against the durable store and
       insert the missing messages.

A failing user is recorded in the report and the batch continues. A failing
tick is logged and the loop keeps its schedule.

Scalability: the scan is O(number of cached users) per tick.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from chatcache.cache.messages import MessageCache
from chatcache.core.repository import CacheAsideMessageRepository
from chatcache.observability.logging import (
    LogEvents,
    bind_context,
    get_logger,
    unbind_context,
)
from chatcache.observability.metrics import record_reconciliation

logger = get_logger(__name__)


class JobState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation run."""

    candidates: int = 0
    users_synced: int = 0
    messages_inserted: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def users_failed(self) -> int:
        return len(self.failures)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": self.candidates,
            "users_synced": self.users_synced,
            "users_failed": self.users_failed,
            "messages_inserted": self.messages_inserted,
            "failures": dict(self.failures),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
        }


class ReconciliationJob:
    """Background job syncing soon-to-expire cached lists to the durable store.

    Example:
        >>> job = ReconciliationJob(repository, cache, interval_seconds=300)
        >>> job.start()  # from a running event loop
        >>> ...
        >>> await job.stop()
    """

    def __init__(
        self,
        repository: CacheAsideMessageRepository,
        cache: MessageCache,
        interval_seconds: float = 300,
        ttl_threshold: int = 300,
    ):
        """Initialize reconciliation job.

        Args:
            repository: Cache-aside repository performing per-user syncs
            cache: Message cache used to find expiring users
            interval_seconds: Seconds between ticks (default: 300)
            ttl_threshold: Sync users whose list expires within this many seconds
        """
        self.repository = repository
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.ttl_threshold = ttl_threshold
        self.state = JobState.STOPPED
        self.last_report: ReconciliationReport | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self.state == JobState.RUNNING

    def start(self) -> None:
        """Start ticking: once immediately, then every ``interval_seconds``.

        Safe to call multiple times (idempotent). Must be called while an
        event loop is running.
        """
        if self.is_running:
            logger.debug("Reconciliation job already running, skipping start")
            return

        self._stop_event = asyncio.Event()
        self.state = JobState.RUNNING
        self._task = asyncio.create_task(self._run(), name="reconciliation_job")
        logger.info(
            LogEvents.JOB_STARTED,
            interval_seconds=self.interval_seconds,
            ttl_threshold=self.ttl_threshold,
        )

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop the loop, waiting up to ``timeout`` for an in-flight tick.

        Safe to call multiple times (idempotent).
        """
        if not self.is_running:
            logger.debug("Reconciliation job not running, skipping stop")
            return

        self.state = JobState.STOPPED
        if self._stop_event is not None:
            self._stop_event.set()

        task, self._task = self._task, None
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Reconciliation tick did not finish in time, cancelled",
                    timeout=timeout,
                )
        logger.info(LogEvents.JOB_STOPPED)

    async def trigger_sync_now(self) -> ReconciliationReport:
        """Run one reconciliation pass immediately, regardless of state.

        Raises:
            CacheError: Finding candidate users failed
        """
        return await self.run_once()

    async def _run(self) -> None:
        while self.is_running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    LogEvents.RECONCILIATION_FAILED,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            if not self.is_running or self._stop_event is None:
                break
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_seconds
                )
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> ReconciliationReport:
        """Sync every user whose cached list is about to expire."""
        started = time.monotonic()
        report = ReconciliationReport()
        bind_context(reconciliation_run=uuid.uuid4().hex[:12])
        try:
            users = await self.cache.users_expiring_within(self.ttl_threshold)
            report.candidates = len(users)
            logger.info(LogEvents.RECONCILIATION_STARTED, candidates=len(users))

            for user_id in users:
                try:
                    inserted = await self.repository.sync_user(user_id)
                except Exception as e:
                    report.failures[user_id] = str(e)
                    logger.warning(
                        LogEvents.USER_SYNC_FAILED,
                        user_id=user_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue

                report.users_synced += 1
                report.messages_inserted += inserted
                if inserted:
                    logger.info(
                        LogEvents.USER_SYNCED, user_id=user_id, inserted=inserted
                    )
        finally:
            unbind_context("reconciliation_run")

        report.finished_at = datetime.now(timezone.utc)
        self.last_report = report
        record_reconciliation(report.messages_inserted, report.users_failed)
        logger.info(
            LogEvents.RECONCILIATION_COMPLETED,
            candidates=report.candidates,
            users_synced=report.users_synced,
            users_failed=report.users_failed,
            messages_inserted=report.messages_inserted,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return report

    async def __aenter__(self) -> "ReconciliationJob":
        self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
