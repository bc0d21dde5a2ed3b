"""
NotebookSaver Backend — Model Catalog Schemas
==============================================

What:  The Gemini `models.list` response shape and the cached catalog.
Why:   The REST API answers in camelCase while older payloads used
       snake_case; AliasChoices accepts both so the filter sees one field.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class ModelDescriptor(BaseModel):
    """One entry of the `models` array. Unknown fields are ignored."""

    name: str
    supported_generation_methods: Optional[List[str]] = Field(
        default=None,
        validation_alias=AliasChoices(
            "supported_generation_methods",
            "supportedGenerationMethods",
        ),
    )

    model_config = {"extra": "ignore"}


class ModelListResponse(BaseModel):
    """`models` is None when the key is absent (the caller then uses defaults)."""

    models: Optional[List[ModelDescriptor]] = None

    model_config = {"extra": "ignore"}


class ModelCatalog(BaseModel):
    """
    What:  The model ids offered for selection.
    Who:   Returned by GET /api/models and POST /api/models/refresh.

    fetched_once flips to True after the first completed fetch and never
    flips back; it decides whether a fresh install should hit the network.
    """

    ids: List[str] = Field(description="Model ids without the 'models/' prefix")
    fetched_once: bool = Field(description="Whether a catalog fetch has ever completed")
