"""
NotebookSaver Backend — Performance Telemetry
===============================================

What:  Groups timed operations into sessions (one per capture or drain
       attempt) and keeps the most recent completed sessions for inspection.
Why:   "Extraction felt slow" is only actionable if the run can be broken
       down: how long did image preparation take, how long did Gemini take,
       was the machine under memory or thermal pressure at the time?
How:   In-memory bookkeeping guarded by a threading.Lock (timings may be
       closed from worker threads). Each log entry carries a fresh
       DeviceContextSnapshot sampled with psutil.

Session lifecycle:
    start_session() ──▶ open ──end_session(success)──▶ completed (succeeded=True/False)
                           └───cancel_session()──────▶ completed (cancelled, succeeded=False)

    A terminated session accepts no more entries, and a second terminal call
    is a no-op. Completed sessions are retained up to `max_completed_sessions`.

Scoped use:
    with telemetry.session() as scope:          # always terminated on exit
        with telemetry.timed("Text Extraction", scope.id):
            ...
        if not ok:
            scope.fail()                        # failure without an exception
"""

import logging
import platform
import threading
import time
import uuid
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, Iterator, List, Optional

import psutil

from notebooksaver import __version__
from notebooksaver.exceptions import SessionNotFoundError
from notebooksaver.schemas.telemetry import (
    DeviceContextSnapshot,
    LogEntry,
    ModelInfo,
    TelemetrySession,
    TimingToken,
)

logger = logging.getLogger(__name__)

MAX_OPERATION_DURATION = 3600.0
HIGH_MEMORY_MB = 500
MEDIUM_MEMORY_MB = 200


# ══════════════════════════════════════════════════════════════════════════
# Device context
# ══════════════════════════════════════════════════════════════════════════

def memory_pressure_label(used_mb: int) -> str:
    """'High (812MB)', 'Medium (250MB)' or 'Low (143MB)' for the process footprint."""
    if used_mb > HIGH_MEMORY_MB:
        level = "High"
    elif used_mb > MEDIUM_MEMORY_MB:
        level = "Medium"
    else:
        level = "Low"
    return f"{level} ({used_mb}MB)"


def thermal_state_label() -> str:
    """
    Classify the hottest sensor against its own thresholds.

    Critical at/above the critical mark, Serious at/above the high mark, Fair
    within 10°C of it, otherwise Normal. Unknown where the platform exposes
    no sensors (macOS, Windows, most containers).
    """
    read_sensors = getattr(psutil, "sensors_temperatures", None)
    if read_sensors is None:
        return "Unknown"
    try:
        readings = read_sensors()
    except (OSError, RuntimeError):
        return "Unknown"
    worst = "Unknown"
    rank = {"Unknown": -1, "Normal": 0, "Fair": 1, "Serious": 2, "Critical": 3}
    for entries in (readings or {}).values():
        for sensor in entries:
            if sensor.current is None:
                continue
            if sensor.critical and sensor.current >= sensor.critical:
                state = "Critical"
            elif sensor.high and sensor.current >= sensor.high:
                state = "Serious"
            elif sensor.high and sensor.current >= sensor.high - 10:
                state = "Fair"
            else:
                state = "Normal"
            if rank[state] > rank[worst]:
                worst = state
    return worst


def capture_device_context(app_version: str = __version__) -> DeviceContextSnapshot:
    """Sample the host right now."""
    try:
        rss_mb = psutil.Process().memory_info().rss // (1024 * 1024)
        memory = memory_pressure_label(int(rss_mb))
    except psutil.Error:
        memory = "Unknown"
    return DeviceContextSnapshot(
        device_model=platform.machine() or "unknown",
        os_version=f"{platform.system()} {platform.release()}".strip(),
        app_version=app_version,
        timestamp=datetime.now(timezone.utc),
        memory_pressure=memory,
        thermal_state=thermal_state_label(),
    )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

class SessionScope:
    """Handle yielded by TelemetryService.session()."""

    def __init__(self, session_id: uuid.UUID):
        self.id = session_id
        self.succeeded = True

    def fail(self) -> None:
        self.succeeded = False


def failed_operation_name(operation: str, error: Optional[BaseException] = None) -> str:
    if error is None:
        return f"{operation} (failed)"
    return f"{operation} (failed: {type(error).__name__})"


class TelemetryService:
    """In-memory telemetry sessions. Thread-safe."""

    def __init__(
        self,
        max_completed_sessions: int = 50,
        context_provider: Callable[[], DeviceContextSnapshot] = capture_device_context,
    ):
        self.max_completed_sessions = max_completed_sessions
        self._context_provider = context_provider
        self._active: Dict[uuid.UUID, TelemetrySession] = {}
        self._completed: Deque[TelemetrySession] = deque(maxlen=max_completed_sessions)
        self._lock = threading.Lock()

    # ── Sessions ──────────────────────────────────────────────────────────

    def start_session(self) -> uuid.UUID:
        session = TelemetrySession(device_context=self._context_provider())
        with self._lock:
            self._active[session.id] = session
        logger.debug("Telemetry session %s started", session.id)
        return session.id

    def end_session(self, session_id: uuid.UUID, success: bool = True) -> bool:
        """
        Terminate an open session.

        Returns:
            False (and changes nothing) when the session is unknown or
            already terminated.
        """
        return self._terminate(session_id, succeeded=success, cancelled=False)

    def cancel_session(self, session_id: uuid.UUID) -> bool:
        """Terminate an open session as cancelled (counts as failed)."""
        return self._terminate(session_id, succeeded=False, cancelled=True)

    def cancel_all_active_sessions(self) -> int:
        """
        Cancel every open session.

        Called when the host is deactivated: work in flight at that point may
        never report back, and a session must not be left open forever.
        """
        with self._lock:
            ids = list(self._active)
        cancelled = sum(1 for sid in ids if self.cancel_session(sid))
        if cancelled:
            logger.info("Cancelled %d open telemetry session(s)", cancelled)
        return cancelled

    def _terminate(self, session_id: uuid.UUID, succeeded: bool, cancelled: bool) -> bool:
        with self._lock:
            session = self._active.pop(session_id, None)
            if session is None:
                logger.debug("Session %s is not open; ignoring termination", session_id)
                return False
            session.end = datetime.now(timezone.utc)
            session.succeeded = succeeded
            session.cancelled = cancelled
            self._completed.append(session)
        logger.info(
            "Telemetry session %s %s after %.2fs with %d operation(s)",
            session_id,
            "cancelled" if cancelled else ("succeeded" if succeeded else "failed"),
            session.total_duration or 0.0,
            len(session.entries),
        )
        return True

    @contextmanager
    def session(self) -> Iterator[SessionScope]:
        """
        Open a session for the duration of a `with` block.

        The session is always terminated on exit: failed if the block raised
        (the exception propagates) or called scope.fail(), succeeded otherwise.
        """
        scope = SessionScope(self.start_session())
        try:
            yield scope
        except BaseException:
            self.end_session(scope.id, success=False)
            raise
        self.end_session(scope.id, success=scope.succeeded)

    # ── Timings ───────────────────────────────────────────────────────────

    def start_timing(self, operation: str, session_id: uuid.UUID) -> Optional[TimingToken]:
        """Begin timing `operation`; None (with a warning) if the session is not open."""
        with self._lock:
            is_open = session_id in self._active
        if not is_open:
            logger.warning("Cannot time '%s': session %s is not open", operation, session_id)
            return None
        return TimingToken(
            operation=operation,
            session_id=session_id,
            started_at=time.perf_counter(),
            start=datetime.now(timezone.utc),
        )

    def end_timing(
        self,
        token: Optional[TimingToken],
        success: bool = True,
        error: Optional[BaseException] = None,
        model_info: Optional[ModelInfo] = None,
    ) -> Optional[LogEntry]:
        """
        Record the elapsed time for `token` in its session.

        A failure is recorded under "<op> (failed)" or "<op> (failed: ErrorType)".
        Returns None when the token is None or its session has terminated.
        """
        if token is None:
            return None
        duration = max(0.0, time.perf_counter() - token.started_at)
        operation = token.operation
        if error is not None:
            operation = failed_operation_name(operation, error)
        elif not success:
            operation = failed_operation_name(operation)
        entry = LogEntry(
            operation=operation,
            start=token.start,
            duration=duration,
            model_info=model_info,
            device_context=self._context_provider(),
        )
        return self._append(token.session_id, entry)

    def log_operation(
        self,
        operation: str,
        duration: float,
        session_id: uuid.UUID,
        model_info: Optional[ModelInfo] = None,
    ) -> Optional[LogEntry]:
        """
        Record an operation timed elsewhere.

        Empty names and durations outside [0, 3600) seconds are rejected with
        a warning and return None.
        """
        if not operation.strip():
            logger.warning("Rejected telemetry entry with an empty operation name")
            return None
        if not (0 <= duration < MAX_OPERATION_DURATION):
            logger.warning("Rejected telemetry entry '%s' with duration %.3fs", operation, duration)
            return None
        now = datetime.now(timezone.utc)
        entry = LogEntry(
            operation=operation,
            start=datetime.fromtimestamp(now.timestamp() - duration, tz=timezone.utc),
            duration=duration,
            model_info=model_info,
            device_context=self._context_provider(),
        )
        return self._append(session_id, entry)

    def _append(self, session_id: uuid.UUID, entry: LogEntry) -> Optional[LogEntry]:
        with self._lock:
            session = self._active.get(session_id)
            if session is None:
                logger.warning(
                    "Dropping '%s': session %s is not open", entry.operation, session_id
                )
                return None
            session.entries.append(entry)
        logger.debug("[%s] %s took %.3fs", session_id, entry.operation, entry.duration)
        return entry

    def _is_terminated(self, session_id: uuid.UUID) -> bool:
        with self._lock:
            return any(s.id == session_id for s in self._completed)

    @contextmanager
    def timed(
        self,
        operation: str,
        session_id: uuid.UUID,
        model_info: Optional[ModelInfo] = None,
    ) -> Iterator[Optional[TimingToken]]:
        """
        Time the enclosed block.

        A session that has already terminated (cancelled on host deactivation,
        say) still runs the block; the timing is simply not recorded and the
        yielded token is None.

        Raises:
            SessionNotFoundError: the session was never started here (raised
                before the block runs)
        """
        token = self.start_timing(operation, session_id)
        if token is None and not self._is_terminated(session_id):
            raise SessionNotFoundError(session_id)
        try:
            yield token
        except BaseException as e:
            self.end_timing(token, success=False, error=e, model_info=model_info)
            raise
        self.end_timing(token, success=True, model_info=model_info)

    # ── Inspection ────────────────────────────────────────────────────────

    def get_session(self, session_id: uuid.UUID) -> Optional[TelemetrySession]:
        """Deep copy of an open or retained session."""
        with self._lock:
            session = self._active.get(session_id)
            if session is None:
                session = next((s for s in self._completed if s.id == session_id), None)
            return session.model_copy(deep=True) if session else None

    def recent_sessions(self, limit: Optional[int] = None) -> List[TelemetrySession]:
        """Completed sessions, newest first."""
        with self._lock:
            sessions = [s.model_copy(deep=True) for s in reversed(self._completed)]
        return sessions[:limit] if limit is not None else sessions

    def active_session_info(self) -> Dict[str, int]:
        with self._lock:
            return {
                "active_sessions": len(self._active),
                "completed_sessions": len(self._completed),
            }

    def clear(self) -> None:
        """Forget completed sessions. Open sessions are left alone."""
        with self._lock:
            self._completed.clear()
