"""
NotebookSaver Backend — Telemetry Schemas
==========================================

What:  Records produced by TelemetryService: sessions, their timed log
       entries, and the context attached to each entry.
Why:   One session per pipeline run or drain attempt lets a slow or failed
       run be broken down step by step, with the device state and model
       configuration that were in effect.

Derived values (pixel counts, compression ratio) are plain properties so
they are computed from the stored fields and never persisted or serialized
out of sync.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceContextSnapshot(BaseModel):
    """
    What:  Host state at the moment a log entry was recorded.

    memory_pressure reads like "Low (143MB)"; thermal_state is one of
    Normal, Fair, Serious, Critical, Unknown.
    """

    device_model: str
    os_version: str
    app_version: str
    timestamp: datetime = Field(default_factory=_utcnow)
    memory_pressure: str
    thermal_state: str

    model_config = {"frozen": True}


class ImageMetadata(BaseModel):
    """Dimensions and sizes of an image before and after preparation for upload."""

    original_width: int = Field(ge=0)
    original_height: int = Field(ge=0)
    processed_width: int = Field(ge=0)
    processed_height: int = Field(ge=0)
    original_file_size_bytes: int = Field(ge=0)
    processed_file_size_bytes: int = Field(ge=0)
    compression_quality: Optional[float] = Field(default=None, ge=0, le=1)
    image_format: str = "JPEG"

    model_config = {"frozen": True}

    @property
    def original_pixel_count(self) -> int:
        return self.original_width * self.original_height

    @property
    def processed_pixel_count(self) -> int:
        return self.processed_width * self.processed_height

    @property
    def compression_ratio(self) -> float:
        """processed bytes / original bytes; 0 when the original size is unknown."""
        if self.original_file_size_bytes <= 0:
            return 0.0
        return self.processed_file_size_bytes / self.original_file_size_bytes

    @property
    def resolution_reduction_ratio(self) -> float:
        """processed pixels / original pixels; 0 for an empty original."""
        if self.original_pixel_count <= 0:
            return 0.0
        return self.processed_pixel_count / self.original_pixel_count


class ModelInfo(BaseModel):
    """Which back-end and model produced a result, and with what settings."""

    service_name: str
    model_name: str
    configuration: Optional[Dict[str, str]] = None
    image_metadata: Optional[ImageMetadata] = None

    model_config = {"frozen": True}


class LogEntry(BaseModel):
    """One timed operation inside a session. `duration` is in seconds."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    operation: str
    start: datetime
    duration: float = Field(ge=0)
    model_info: Optional[ModelInfo] = None
    device_context: DeviceContextSnapshot

    model_config = {"frozen": True}


class TelemetrySession(BaseModel):
    """
    What:  A run of related operations.

    Lifecycle:
        open        end is None, succeeded is None
        terminated  end is set; succeeded is True/False; cancelled marks a
                    session closed by host deactivation or cancel_session

    Only TelemetryService mutates sessions, and only while they are open.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    start: datetime = Field(default_factory=_utcnow)
    end: Optional[datetime] = None
    succeeded: Optional[bool] = None
    cancelled: bool = False
    entries: List[LogEntry] = Field(default_factory=list)
    device_context: DeviceContextSnapshot

    @property
    def is_terminated(self) -> bool:
        return self.end is not None

    @property
    def total_duration(self) -> Optional[float]:
        """Seconds from start to end, or None while the session is open."""
        if self.end is None:
            return None
        return (self.end - self.start).total_seconds()


class TimingToken(BaseModel):
    """
    Handle returned by start_timing and passed back to end_timing.

    started_at is a monotonic clock reading (time.perf_counter) used for the
    duration; start is the wall-clock time recorded on the entry.
    """

    operation: str
    session_id: uuid.UUID
    started_at: float
    start: datetime

    model_config = {"frozen": True}
