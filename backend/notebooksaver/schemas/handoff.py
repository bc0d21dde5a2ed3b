"""
NotebookSaver Backend — Hand-off Schemas
=========================================

What:  Entries of the pending Drafts queue and the outcomes of queue calls.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingHandoffEntry(BaseModel):
    """
    What:  Text waiting to be handed to Drafts.

    Persisted as {"text", "tag", "timestamp"}; `timestamp` is the enqueue
    time in ISO 8601 UTC.
    """

    text: str
    tag: Optional[str] = None
    enqueued_at: datetime = Field(default_factory=_utcnow, alias="timestamp")

    model_config = {"frozen": True, "populate_by_name": True}


class HandoffOutcome(str, Enum):
    """Result of DraftHandoffQueue.submit."""

    DELIVERED = "delivered"
    QUEUED = "queued"


class DrainResult(str, Enum):
    """Result of one DraftHandoffQueue.drain_on_foreground call."""

    INACTIVE = "inactive"
    EMPTY = "empty"
    BUSY = "busy"
    NOT_INSTALLED = "not_installed"
    DELIVERED = "delivered"
    FAILED = "failed"
