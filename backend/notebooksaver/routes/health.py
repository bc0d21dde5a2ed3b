"""
NotebookSaver Backend — Health Check Route
============================================

What:  Health check endpoint for the capture client and process supervisors.
How:   Probes the key-value store and the configured extractor.

Status levels:
    - healthy:   store reachable and extractor available (HTTP 200)
    - degraded:  extractor unavailable; queued drafts are still safe (HTTP 200)
    - unhealthy: store unreachable; nothing can be queued (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from notebooksaver import __version__
from notebooksaver.dependencies import get_container
from notebooksaver.schemas.api import HealthResponse
from notebooksaver.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Key-value store unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(container: ServiceContainer = Depends(get_container)):
    store_ok = await container.store.ping()
    extractor = container.pipeline.current_extractor()
    extractor_ok = await extractor.health_check()

    if not store_ok:
        overall = "unhealthy"
    elif not extractor_ok:
        overall = "degraded"
    else:
        overall = "healthy"

    pending = await container.handoff_queue.pending_count() if store_ok else 0
    body = HealthResponse(
        status=overall,
        version=__version__,
        store="connected" if store_ok else "disconnected",
        extractor=f"{extractor.service_name}:{'available' if extractor_ok else 'unavailable'}",
        host_active=container.host.is_active,
        pending_drafts=pending,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not store_ok:
        logger.warning("Health check: key-value store unreachable")
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body
