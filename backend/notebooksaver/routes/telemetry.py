"""
NotebookSaver Backend — Telemetry Routes
==========================================

    GET    /api/telemetry/sessions   recent completed sessions, newest first
    GET    /api/telemetry/report     the same as a plain-text report
    DELETE /api/telemetry/sessions   forget completed sessions
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from notebooksaver.dependencies import get_container
from notebooksaver.schemas.api import LogEntryResponse, SessionListResponse, SessionResponse
from notebooksaver.schemas.telemetry import TelemetrySession
from notebooksaver.services.container import ServiceContainer
from notebooksaver.services.telemetry_formatter import format_sessions

router = APIRouter(prefix="/api/telemetry", tags=["Telemetry"])


def _to_response(session: TelemetrySession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        start=session.start,
        end=session.end,
        succeeded=session.succeeded,
        cancelled=session.cancelled,
        total_duration=session.total_duration,
        entries=[
            LogEntryResponse(
                operation=entry.operation,
                start=entry.start,
                duration=entry.duration,
                model_info=entry.model_info,
                memory_pressure=entry.device_context.memory_pressure,
                thermal_state=entry.device_context.thermal_state,
            )
            for entry in session.entries
        ],
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    limit: int = Query(default=20, ge=1, le=1000),
    container: ServiceContainer = Depends(get_container),
) -> SessionListResponse:
    sessions = container.telemetry.recent_sessions(limit)
    return SessionListResponse(
        sessions=[_to_response(s) for s in sessions],
        stats=container.telemetry.active_session_info(),
    )


@router.get("/report", response_class=PlainTextResponse)
async def session_report(
    limit: int = Query(default=20, ge=1, le=1000),
    container: ServiceContainer = Depends(get_container),
) -> str:
    return format_sessions(container.telemetry.recent_sessions(limit))


@router.delete("/sessions", status_code=204)
async def clear_sessions(container: ServiceContainer = Depends(get_container)) -> None:
    container.telemetry.clear()
