"""
NotebookSaver Backend — Pydantic Request/Response Schemas
===========================================================

What:  The API contract of the local HTTP surface.
Why:   Strict input validation, automatic serialization, and OpenAPI docs.

Design Decision:
    Response schemas are separate from the service records (PipelineResult,
    TelemetrySession, ...) so internal fields such as the credential in
    ExtractorConfig can never leak into a response.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from notebooksaver.schemas.handoff import DrainResult, HandoffOutcome
from notebooksaver.schemas.telemetry import ModelInfo


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════

class DraftSubmitRequest(BaseModel):
    """Body of POST /api/handoff/drafts."""

    text: str = Field(min_length=1, description="Text for the new draft")
    tag: Optional[str] = Field(default=None, max_length=100, description="Drafts tag")

    @field_validator("text")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must contain non-whitespace characters")
        return v

    @field_validator("tag")
    @classmethod
    def normalize_tag(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════

class ExtractResponse(BaseModel):
    """
    What:  Result of one capture.
    Who:   Returned by POST /api/extract.
    """

    text: str = Field(description="Recognized text")
    handoff: HandoffOutcome = Field(description="'delivered' to Drafts now, or 'queued' for later")
    service: str = Field(description="Back-end that produced the text (Gemini or Local)")
    model: str = Field(description="Model or engine name")
    session_id: uuid.UUID = Field(description="Telemetry session of this capture")
    photo_path: Optional[str] = Field(default=None, description="Archived photo, if saved")


class SubmitResponse(BaseModel):
    handoff: HandoffOutcome


class PendingDraftItem(BaseModel):
    text_preview: str = Field(description="First 200 characters of the queued text")
    tag: Optional[str] = None
    enqueued_at: datetime


class QueueStatusResponse(BaseModel):
    pending_count: int
    draining: bool
    entries: List[PendingDraftItem]


class LifecycleResponse(BaseModel):
    """Host state after a lifecycle call; `changed` is False for a repeated transition."""

    active: bool
    changed: bool
    pending_count: int


class NotificationResponse(BaseModel):
    drain: Optional[DrainResult] = None
    pending_count: int


class LogEntryResponse(BaseModel):
    operation: str
    start: datetime
    duration: float
    model_info: Optional[ModelInfo] = None
    memory_pressure: str
    thermal_state: str


class SessionResponse(BaseModel):
    id: uuid.UUID
    start: datetime
    end: Optional[datetime]
    succeeded: Optional[bool]
    cancelled: bool
    total_duration: Optional[float]
    entries: List[LogEntryResponse]


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    stats: Dict[str, int]


class HealthResponse(BaseModel):
    """
    What:  Service health status.
    Who:   Returned by GET /health.
    """

    status: str = Field(description="Overall health: healthy, degraded, or unhealthy")
    version: str = Field(description="Application version")
    store: str = Field(description="Key-value store status: connected or disconnected")
    extractor: str = Field(description="Configured back-end and whether it is available")
    host_active: bool
    pending_drafts: int
    uptime_seconds: float


class ErrorResponse(BaseModel):
    """Consistent error response format across all endpoints."""

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request ID for support correlation")
