"""Detached background tasks with a mandatory error sink.

Cache writes on the request path and login warm-ups run detached so the
caller's latency is bound to the durable store only. They must not fail the
caller, but their errors must not vanish either: every task spawned here
routes its exception to an error sink supplied at construction time.

Usage:
    >>> tasks = BackgroundTasks(on_error=log_task_error)
    >>> tasks.spawn(cache.append_message(user_id, message), name="cache_append")
    >>> await tasks.drain(timeout=5.0)  # on shutdown
"""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

ErrorSink = Callable[[str, Exception], None]


def log_task_error(name: str, error: Exception) -> None:
    """Default sink: log the failure with its traceback."""
    logger.error(f"Background task {name} failed: {error}", exc_info=error)


class BackgroundTasks:
    """Registry of detached asyncio tasks.

    Keeps a strong reference to every task until it finishes (the event loop
    only holds weak references) and exposes ``drain`` for graceful shutdown.
    """

    def __init__(self, on_error: ErrorSink):
        """Initialize task registry.

        Args:
            on_error: Called with (task name, exception) for every failed task
        """
        self.on_error = on_error
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str,
        on_error: ErrorSink | None = None,
    ) -> asyncio.Task[None]:
        """Run ``coro`` in the background.

        Args:
            coro: Coroutine to run
            name: Task name used in error reports
            on_error: Overrides the registry sink for this task

        Returns:
            The scheduled task (never raises the coroutine's error)
        """
        sink = on_error or self.on_error
        task = asyncio.create_task(self._guard(coro, name, sink), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(
        coro: Coroutine[Any, Any, Any], name: str, sink: ErrorSink
    ) -> None:
        try:
            await coro
        except Exception as e:
            try:
                sink(name, e)
            except Exception:
                logger.exception(f"Error sink failed while reporting task {name}")

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for all pending tasks, including ones spawned while waiting.

        Args:
            timeout: Maximum seconds to wait (None = no limit)

        Returns:
            True if every task finished, False if the timeout was reached
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            _, not_done = await asyncio.wait(set(self._tasks), timeout=remaining)
            if not_done and deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"{len(not_done)} background tasks still running")
                return False
        return True

    def cancel_all(self) -> int:
        """Cancel every pending task. Returns how many were cancelled."""
        count = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                count += 1
        return count
