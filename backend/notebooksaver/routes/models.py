"""
NotebookSaver Backend — Model Catalog Routes
==============================================

    GET  /api/models          cached catalog (defaults until the first fetch)
    POST /api/models/refresh  fetch from Gemini and replace the cache
"""

from fastapi import APIRouter, Depends

from notebooksaver.dependencies import get_container
from notebooksaver.schemas.api import ErrorResponse
from notebooksaver.schemas.catalog import ModelCatalog
from notebooksaver.services.container import ServiceContainer

router = APIRouter(prefix="/api/models", tags=["Models"])


@router.get("", response_model=ModelCatalog, summary="Available Gemini models")
async def list_models(container: ServiceContainer = Depends(get_container)) -> ModelCatalog:
    return await container.catalog.snapshot()


@router.post(
    "/refresh",
    response_model=ModelCatalog,
    responses={
        502: {"description": "Gemini rejected the request", "model": ErrorResponse},
        503: {"description": "No API key or endpoint configured", "model": ErrorResponse},
        504: {"description": "Gemini unreachable", "model": ErrorResponse},
    },
    summary="Refresh the model list from Gemini",
)
async def refresh_models(container: ServiceContainer = Depends(get_container)) -> ModelCatalog:
    ids = await container.catalog.fetch_available_models()
    return ModelCatalog(ids=ids, fetched_once=True)
