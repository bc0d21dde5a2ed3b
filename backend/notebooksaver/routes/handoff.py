"""
NotebookSaver Backend — Hand-off, Lifecycle & Notification Routes
===================================================================

What:  The endpoints a capture client uses to drive the Drafts queue.

    POST /api/handoff/drafts                  submit text directly
    GET  /api/handoff/queue                   inspect queued drafts
    POST /api/host/foreground                 host came to the foreground (drains once)
    POST /api/host/background                 host went to the background
    POST /api/notifications/{id}/open         user tapped a "page ready" notification
"""

import logging

from fastapi import APIRouter, Depends

from notebooksaver.dependencies import get_container
from notebooksaver.schemas.api import (
    DraftSubmitRequest,
    ErrorResponse,
    LifecycleResponse,
    NotificationResponse,
    PendingDraftItem,
    QueueStatusResponse,
    SubmitResponse,
)
from notebooksaver.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Hand-off"])

PREVIEW_CHARS = 200


@router.post(
    "/handoff/drafts",
    response_model=SubmitResponse,
    responses={
        409: {"description": "Drafts is not installed", "model": ErrorResponse},
        502: {"description": "Drafts did not accept the hand-off", "model": ErrorResponse},
    },
    summary="Hand text to Drafts, or queue it while the host is inactive",
)
async def submit_draft(
    body: DraftSubmitRequest,
    container: ServiceContainer = Depends(get_container),
) -> SubmitResponse:
    outcome = await container.handoff_queue.submit(body.text, body.tag)
    return SubmitResponse(handoff=outcome)


@router.get("/handoff/queue", response_model=QueueStatusResponse, summary="Queued drafts")
async def queue_status(container: ServiceContainer = Depends(get_container)) -> QueueStatusResponse:
    entries = await container.handoff_queue.pending_entries()
    return QueueStatusResponse(
        pending_count=len(entries),
        draining=container.handoff_queue.is_draining,
        entries=[
            PendingDraftItem(
                text_preview=entry.text[:PREVIEW_CHARS],
                tag=entry.tag,
                enqueued_at=entry.enqueued_at,
            )
            for entry in entries
        ],
    )


@router.post("/host/foreground", response_model=LifecycleResponse, summary="Host entered the foreground")
async def host_foreground(container: ServiceContainer = Depends(get_container)) -> LifecycleResponse:
    changed = await container.host.activate()
    return LifecycleResponse(
        active=container.host.is_active,
        changed=changed,
        pending_count=await container.handoff_queue.pending_count(),
    )


@router.post("/host/background", response_model=LifecycleResponse, summary="Host entered the background")
async def host_background(container: ServiceContainer = Depends(get_container)) -> LifecycleResponse:
    changed = await container.host.deactivate()
    return LifecycleResponse(
        active=container.host.is_active,
        changed=changed,
        pending_count=await container.handoff_queue.pending_count(),
    )


@router.post(
    "/notifications/{correlation_id}/open",
    response_model=NotificationResponse,
    summary="A 'page ready' notification was tapped",
)
async def notification_opened(
    correlation_id: str,
    container: ServiceContainer = Depends(get_container),
) -> NotificationResponse:
    results = await container.notifier.notification_opened(correlation_id)
    return NotificationResponse(
        drain=results[0] if results else None,
        pending_count=await container.handoff_queue.pending_count(),
    )
