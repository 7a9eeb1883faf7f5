"""Graceful shutdown for the chatcache service.

Shutdown order matters for the cache-aside layer:
    1. Drain in-flight requests so no new cache work is scheduled.
    2. Stop the reconciliation job (an in-flight tick may finish).
    3. Drain detached cache writes and warm-ups.
    4. Close the cache client, then the database pool.

Each step is attempted even if an earlier one failed. Failures are logged
and collected in ``ShutdownState.errors``.

Usage with FastAPI:
    >>> manager = LifecycleManager(
    ...     job=services.job,
    ...     tasks=services.tasks,
    ...     cache_store=services.cache_store,
    ...     database=services.database,
    ... )
    >>> manager.install_signal_handlers()
    >>> yield
    >>> await manager.shutdown()
"""

import asyncio
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatcache.cache.store import CacheStore
    from chatcache.core.database import Database
    from chatcache.core.tasks import BackgroundTasks
    from chatcache.jobs.reconciliation import ReconciliationJob

logger = logging.getLogger(__name__)


class ShutdownPhase(Enum):
    """Shutdown phases for tracking progress."""

    NOT_STARTED = "not_started"
    SIGNAL_RECEIVED = "signal_received"
    DRAINING_REQUESTS = "draining_requests"
    STOPPING_JOBS = "stopping_jobs"
    DRAINING_TASKS = "draining_tasks"
    CLOSING_CONNECTIONS = "closing_connections"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ShutdownState:
    """Tracks shutdown progress and timing."""

    phase: ShutdownPhase = ShutdownPhase.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    signal_received: str | None = None
    in_flight_requests: int = 0
    abandoned_tasks: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate shutdown duration in seconds."""
        if self.started_at is None:
            return None
        end = self.completed_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()


class LifecycleManager:
    """Coordinates graceful shutdown of the message layer.

    Every component is optional; missing ones are skipped. ``shutdown`` is
    guarded by a lock and is idempotent.

    Attributes:
        job: Reconciliation job to stop (None when the cache is disabled)
        tasks: Detached task runner to drain
        cache_store: Cache client to close
        database: Database pool to close
        shutdown_timeout: Max seconds for each draining phase
        state: Current shutdown state
    """

    def __init__(
        self,
        job: "ReconciliationJob | None" = None,
        tasks: "BackgroundTasks | None" = None,
        cache_store: "CacheStore | None" = None,
        database: "Database | None" = None,
        shutdown_timeout: float = 30.0,
    ) -> None:
        self.job = job
        self.tasks = tasks
        self.cache_store = cache_store
        self.database = database
        self.shutdown_timeout = shutdown_timeout

        self.state = ShutdownState()
        self._shutdown_event = asyncio.Event()
        self._shutdown_lock = asyncio.Lock()
        self._active_requests: set[str] = set()
        self._signal_handlers_installed = False

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown signal was received."""
        return self._shutdown_event.is_set()

    def install_signal_handlers(self) -> None:
        """Install SIGTERM/SIGINT handlers that trigger ``shutdown``.

        Safe to call multiple times; subsequent calls are no-ops. Must run in
        the main thread with a running loop.
        """
        if self._signal_handlers_installed:
            logger.debug("Signal handlers already installed, skipping")
            return

        loop = asyncio.get_running_loop()

        def create_handler(sig: signal.Signals) -> Callable[[], None]:
            def handler() -> None:
                asyncio.create_task(self._handle_signal(sig))

            return handler

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, create_handler(sig))

        self._signal_handlers_installed = True
        logger.info("Signal handlers installed for graceful shutdown")

    def remove_signal_handlers(self) -> None:
        if not self._signal_handlers_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except (ValueError, RuntimeError):
                # Loop may be closing
                pass

        self._signal_handlers_installed = False

    async def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, initiating graceful shutdown")
        self.state.signal_received = sig.name
        self._shutdown_event.set()
        await self.shutdown()

    def track_request_start(self, request_id: str) -> None:
        """Track start of a new request.

        Raises:
            RuntimeError: If shutdown is in progress
        """
        if self.shutdown_requested:
            raise RuntimeError("Cannot accept new requests during shutdown")

        self._active_requests.add(request_id)
        self.state.in_flight_requests = len(self._active_requests)

    def track_request_end(self, request_id: str) -> None:
        self._active_requests.discard(request_id)
        self.state.in_flight_requests = len(self._active_requests)

    async def wait_for_requests(self) -> bool:
        """Wait for all in-flight requests to complete.

        Returns:
            True if all requests completed, False if timeout reached
        """
        if not self._active_requests:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.shutdown_timeout
        logger.info(
            f"Waiting for {len(self._active_requests)} in-flight requests "
            f"(timeout: {self.shutdown_timeout}s)"
        )
        while self._active_requests:
            if loop.time() >= deadline:
                logger.warning(
                    f"Timeout waiting for requests, "
                    f"{len(self._active_requests)} still in flight"
                )
                return False
            await asyncio.sleep(0.1)
        return True

    async def stop_job(self) -> bool:
        if self.job is None:
            return True

        try:
            await self.job.stop(timeout=self.shutdown_timeout)
            return True
        except Exception as e:
            self._record_error(f"Failed to stop reconciliation job: {e}")
            return False

    async def drain_tasks(self) -> bool:
        """Wait for detached cache writes, cancelling stragglers at the deadline."""
        if self.tasks is None or not self.tasks.pending:
            return True

        logger.info(f"Draining {self.tasks.pending} background tasks")
        if await self.tasks.drain(timeout=self.shutdown_timeout):
            return True

        self.state.abandoned_tasks = self.tasks.cancel_all()
        logger.warning(f"Cancelled {self.state.abandoned_tasks} background tasks")
        return False

    async def close_connections(self) -> bool:
        """Close the cache client, then the database pool."""
        ok = True
        if self.cache_store is not None:
            try:
                await self.cache_store.close()
            except Exception as e:
                self._record_error(f"Failed to close cache: {e}")
                ok = False

        if self.database is not None:
            try:
                await self.database.disconnect()
            except Exception as e:
                self._record_error(f"Failed to close database: {e}")
                ok = False
        return ok

    def _record_error(self, message: str) -> None:
        logger.error(message)
        self.state.errors.append(message)

    async def shutdown(self) -> ShutdownState:
        """Execute the graceful shutdown sequence once.

        Returns:
            ShutdownState with shutdown results and timing
        """
        async with self._shutdown_lock:
            if self.state.phase != ShutdownPhase.NOT_STARTED:
                logger.debug(f"Shutdown already {self.state.phase.value}")
                return self.state

            self.state.phase = ShutdownPhase.SIGNAL_RECEIVED
            self.state.started_at = datetime.now(timezone.utc)
            self._shutdown_event.set()
            self.remove_signal_handlers()

            self.state.phase = ShutdownPhase.DRAINING_REQUESTS
            await self.wait_for_requests()

            self.state.phase = ShutdownPhase.STOPPING_JOBS
            await self.stop_job()

            self.state.phase = ShutdownPhase.DRAINING_TASKS
            await self.drain_tasks()

            self.state.phase = ShutdownPhase.CLOSING_CONNECTIONS
            await self.close_connections()

            self.state.completed_at = datetime.now(timezone.utc)
            if self.state.errors:
                self.state.phase = ShutdownPhase.FAILED
                logger.warning(
                    f"Shutdown completed with {len(self.state.errors)} errors "
                    f"in {self.state.duration_seconds:.1f}s"
                )
            else:
                self.state.phase = ShutdownPhase.COMPLETE
                logger.info(
                    f"Graceful shutdown completed in {self.state.duration_seconds:.1f}s"
                )
            return self.state
