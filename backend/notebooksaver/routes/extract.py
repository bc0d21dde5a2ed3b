"""
NotebookSaver Backend — Extract Route Handler
===============================================

What:  POST /api/extract — upload a page photo, get text, hand it to Drafts.
How:   Reads the multipart upload and delegates to ExtractionPipeline.

Request Flow:
    1. Client sends multipart/form-data with a 'file' field (optional 'tag')
    2. ExtractionPipeline: decode → archive → extract → submit
    3. 201 Created with ExtractResponse; `handoff` says whether Drafts got
       the text now or it was queued for the next foreground
    4. On error: the global handlers map the NotebookSaverError subclass
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from notebooksaver.dependencies import get_container
from notebooksaver.schemas.api import ErrorResponse, ExtractResponse
from notebooksaver.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Extract"])


@router.post(
    "/extract",
    status_code=201,
    response_model=ExtractResponse,
    responses={
        400: {"description": "Not a decodable image", "model": ErrorResponse},
        409: {"description": "Drafts is not installed", "model": ErrorResponse},
        422: {"description": "No text found in the image", "model": ErrorResponse},
        502: {"description": "Gemini or Drafts failed", "model": ErrorResponse},
        503: {"description": "Cloud extraction is not configured", "model": ErrorResponse},
    },
    summary="Extract text from a notebook page photo",
)
async def extract_page(
    file: UploadFile = File(..., description="Photo of a notebook page"),
    tag: Optional[str] = Form(default=None, description="Drafts tag override"),
    container: ServiceContainer = Depends(get_container),
) -> ExtractResponse:
    try:
        content = await file.read()
    finally:
        await file.close()
    logger.info(
        "Received extract request: filename=%s, size=%d bytes",
        file.filename or "unknown",
        len(content),
    )

    result = await container.pipeline.process_image(content, tag=tag or None)
    return ExtractResponse(
        text=result.text,
        handoff=result.outcome,
        service=result.model_info.service_name,
        model=result.model_info.model_name,
        session_id=result.session_id,
        photo_path=result.photo_path,
    )
