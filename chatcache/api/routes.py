"""Operational routes: health probe and reconciliation/warm-up admin hooks."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chatcache.core.exceptions import CacheError
from chatcache.utils.service_factory import Services

logger = logging.getLogger(__name__)

HEALTH_CACHE_TIMEOUT = 2.0


class HealthResponse(BaseModel):
    """Health probe result."""

    status: str = Field(..., description="ok or degraded")
    database: str = Field(..., description="ok or unavailable")
    cache: str = Field(..., description="ok, unavailable or disabled")
    reconciliation: str = Field(..., description="running, stopped or disabled")
    timestamp: str


class WarmUpResponse(BaseModel):
    user_id: str
    scheduled: bool


async def _cache_status(services: Services) -> str:
    if services.cache_store is None:
        return "disabled"
    try:
        reachable = await asyncio.wait_for(
            services.cache_store.ping(), timeout=HEALTH_CACHE_TIMEOUT
        )
    except asyncio.TimeoutError:
        reachable = False
    return "ok" if reachable else "unavailable"


def create_routes(services: Services) -> APIRouter:
    """Create API routes bound to a services bundle."""
    api_router = APIRouter()

    @api_router.get("/health", response_model=HealthResponse)
    async def health() -> Any:
        """Database and cache reachability.

        A cache outage degrades the service but does not make it unhealthy,
        since every read falls back to the durable store.
        """
        database_ok = True
        if services.database is not None:
            database_ok = await services.database.ping()
        cache = await _cache_status(services)

        if services.job is None:
            reconciliation = "disabled"
        else:
            reconciliation = services.job.state.value

        body = HealthResponse(
            status="ok" if database_ok and cache != "unavailable" else "degraded",
            database="ok" if database_ok else "unavailable",
            cache=cache,
            reconciliation=reconciliation,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        status_code = (
            status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @api_router.post("/admin/reconcile")
    async def reconcile() -> dict[str, Any]:
        """Run one reconciliation pass now and return its report."""
        if services.job is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Message cache is disabled, nothing to reconcile",
            )
        try:
            report = await services.job.trigger_sync_now()
        except CacheError as e:
            logger.error(f"Manual reconciliation failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Cache unavailable: {e.message}",
            ) from e
        return report.to_dict()

    @api_router.post(
        "/admin/warm/{user_id}",
        response_model=WarmUpResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def warm(user_id: str) -> WarmUpResponse:
        """Schedule a detached cache warm-up for one user."""
        services.warmer.warm_in_background(user_id)
        return WarmUpResponse(user_id=user_id, scheduled=services.cache_enabled)

    return api_router
