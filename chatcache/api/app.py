"""FastAPI application factory with graceful shutdown support."""

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from chatcache import __version__
from chatcache.api.routes import create_routes
from chatcache.core.config import settings
from chatcache.core.lifecycle import LifecycleManager
from chatcache.observability.logging import configure_logging
from chatcache.utils.service_factory import Services, create_services

logger = logging.getLogger(__name__)

ServicesFactory = Callable[[], Awaitable[Services]]


def _lifespan(services_factory: ServicesFactory):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build the message layer, start the job, shut down gracefully.

        Shutdown sequence (via LifecycleManager):
            1. Drain in-flight requests
            2. Stop the reconciliation job
            3. Drain detached cache writes
            4. Close cache and database connections
        """
        configure_logging(
            level=settings.log_level,
            log_format=settings.log_format,
            is_production=settings.is_production,
        )
        logger.info("Starting chatcache service...")

        services = await services_factory()
        services.start_background_jobs()

        manager = services.lifecycle_manager()
        try:
            manager.install_signal_handlers()
        except Exception as e:
            # Not possible outside the main thread (e.g. test clients)
            logger.warning(f"Could not install signal handlers: {e}")

        app.state.services = services
        app.state.lifecycle_manager = manager
        app.include_router(create_routes(services))

        logger.info("chatcache service started")

        yield

        logger.info("Shutting down chatcache service...")
        await manager.shutdown()
        logger.info("Shutdown complete")

    return lifespan


def create_app(services_factory: ServicesFactory = create_services) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        services_factory: Async callable building the services bundle

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="chatcache",
        description="Cache-aside chat message layer",
        version=__version__,
        lifespan=_lifespan(services_factory),
    )

    @app.middleware("http")
    async def track_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        manager: LifecycleManager | None = getattr(
            request.app.state, "lifecycle_manager", None
        )
        if manager is None:
            return await call_next(request)

        request_id = uuid.uuid4().hex
        try:
            manager.track_request_start(request_id)
        except RuntimeError:
            return JSONResponse(
                status_code=503, content={"error": "Service is shutting down"}
            )
        try:
            return await call_next(request)
        finally:
            manager.track_request_end(request_id)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unhandled exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)},
        )

    return app
