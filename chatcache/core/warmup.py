"""Login warm-up: preload a user's recent messages into the cache.

The auth flow calls ``warm_in_background`` right after a successful login and
returns immediately. The warm-up runs detached; its failures are reported to
the log and metrics, never to the login response.
"""

import asyncio

from chatcache.core.repository import MessageRepository
from chatcache.core.tasks import BackgroundTasks
from chatcache.observability.logging import LogEvents, get_logger
from chatcache.observability.metrics import record_warm_up

logger = get_logger(__name__)


class CacheWarmer:
    """Schedules ``MessageRepository.warm_cache`` on the background runner."""

    def __init__(self, repository: MessageRepository, tasks: BackgroundTasks):
        self.repository = repository
        self.tasks = tasks

    def warm_in_background(self, user_id: str) -> asyncio.Task[None]:
        """Start a detached warm-up for ``user_id`` and return its task."""
        return self.tasks.spawn(
            self._warm(user_id),
            name=f"warm_up:{user_id}",
            on_error=self._on_failure,
        )

    async def _warm(self, user_id: str) -> None:
        logger.debug(LogEvents.WARM_UP_STARTED, user_id=user_id)
        loaded = await self.repository.warm_cache(user_id)
        record_warm_up("warmed" if loaded else "empty")
        logger.info(LogEvents.WARM_UP_COMPLETED, user_id=user_id, loaded=loaded)

    @staticmethod
    def _on_failure(name: str, error: Exception) -> None:
        record_warm_up("failed")
        logger.warning(
            LogEvents.WARM_UP_FAILED,
            task=name,
            error=str(error),
            error_type=type(error).__name__,
        )
