"""
NotebookSaver Backend — Telemetry Unit Tests
==============================================

What:  TelemetryService session bookkeeping, the device-context helpers and
       the plain-text report formatter.

What we test:
    ✅ Session lifecycle: end, cancel, double termination, retention limit
    ✅ Timings: success, failure naming, late timings dropped
    ✅ log_operation validation
    ✅ session() / timed() context managers
    ✅ Memory and thermal labels (psutil monkeypatched)
    ✅ Report formatting
"""

import uuid
from collections import namedtuple

import pytest

from conftest import fixed_device_context
from notebooksaver.exceptions import NoTextFoundError, SessionNotFoundError
from notebooksaver.schemas.telemetry import ImageMetadata, ModelInfo
from notebooksaver.services import telemetry as telemetry_module
from notebooksaver.services.telemetry import (
    TelemetryService,
    capture_device_context,
    failed_operation_name,
    memory_pressure_label,
    thermal_state_label,
)
from notebooksaver.services.telemetry_formatter import format_session, format_sessions

Sensor = namedtuple("Sensor", "label current high critical")


class TestSessionLifecycle:
    """Tests for start / end / cancel."""

    def test_end_session_records_outcome(self, telemetry):
        sid = telemetry.start_session()
        assert telemetry.end_session(sid, success=False) is True

        [session] = telemetry.recent_sessions()
        assert session.id == sid
        assert session.succeeded is False
        assert session.cancelled is False
        assert session.is_terminated
        assert session.total_duration >= 0

    def test_second_termination_is_a_no_op(self, telemetry):
        sid = telemetry.start_session()
        telemetry.end_session(sid)
        assert telemetry.end_session(sid, success=False) is False
        assert telemetry.cancel_session(sid) is False
        assert telemetry.get_session(sid).succeeded is True

    def test_unknown_session(self, telemetry):
        assert telemetry.end_session(uuid.uuid4()) is False
        assert telemetry.get_session(uuid.uuid4()) is None

    def test_cancel_marks_failed_and_cancelled(self, telemetry):
        sid = telemetry.start_session()
        telemetry.cancel_session(sid)
        session = telemetry.get_session(sid)
        assert session.cancelled is True
        assert session.succeeded is False

    def test_cancel_all_active_sessions(self, telemetry):
        open_ids = [telemetry.start_session() for _ in range(3)]
        done = telemetry.start_session()
        telemetry.end_session(done)

        assert telemetry.cancel_all_active_sessions() == 3

        assert telemetry.active_session_info() == {"active_sessions": 0, "completed_sessions": 4}
        assert all(telemetry.get_session(sid).cancelled for sid in open_ids)
        assert telemetry.get_session(done).cancelled is False

    def test_retention_limit_keeps_newest(self):
        service = TelemetryService(max_completed_sessions=3, context_provider=fixed_device_context)
        ids = []
        for _ in range(5):
            sid = service.start_session()
            service.end_session(sid)
            ids.append(sid)

        assert [s.id for s in service.recent_sessions()] == list(reversed(ids[2:]))
        assert [s.id for s in service.recent_sessions(limit=1)] == [ids[4]]

    def test_returned_sessions_are_copies(self, telemetry):
        sid = telemetry.start_session()
        telemetry.get_session(sid).entries.append("junk")
        assert telemetry.get_session(sid).entries == []

    def test_clear_keeps_open_sessions(self, telemetry):
        open_id = telemetry.start_session()
        telemetry.end_session(telemetry.start_session())
        telemetry.clear()
        assert telemetry.recent_sessions() == []
        assert telemetry.get_session(open_id) is not None


class TestTimings:
    """Tests for start_timing / end_timing / log_operation."""

    def test_successful_timing(self, telemetry):
        sid = telemetry.start_session()
        token = telemetry.start_timing("Text Extraction", sid)
        info = ModelInfo(service_name="Local", model_name="FakeOCR")
        entry = telemetry.end_timing(token, model_info=info)

        assert entry.operation == "Text Extraction"
        assert entry.duration >= 0
        assert entry.model_info == info
        assert entry.device_context == fixed_device_context()
        assert telemetry.get_session(sid).entries == [entry]

    def test_failure_names(self, telemetry):
        sid = telemetry.start_session()
        plain = telemetry.end_timing(telemetry.start_timing("Create Draft", sid), success=False)
        typed = telemetry.end_timing(telemetry.start_timing("Text Extraction", sid), error=NoTextFoundError())
        assert plain.operation == "Create Draft (failed)"
        assert typed.operation == "Text Extraction (failed: NoTextFoundError)"

    def test_failed_operation_name(self):
        assert failed_operation_name("Op") == "Op (failed)"
        assert failed_operation_name("Op", ValueError()) == "Op (failed: ValueError)"

    def test_timing_for_closed_session(self, telemetry):
        sid = telemetry.start_session()
        token = telemetry.start_timing("Late", sid)
        telemetry.end_session(sid)

        assert telemetry.start_timing("Later", sid) is None
        assert telemetry.end_timing(token) is None
        assert telemetry.end_timing(None) is None
        assert telemetry.get_session(sid).entries == []

    def test_log_operation(self, telemetry):
        sid = telemetry.start_session()
        entry = telemetry.log_operation("Upload", 1.5, sid)
        assert entry.duration == 1.5
        assert entry.operation == "Upload"

    @pytest.mark.parametrize("operation,duration", [("", 1.0), ("  ", 1.0), ("Op", -0.1), ("Op", 3600.0)])
    def test_log_operation_rejects_invalid(self, telemetry, operation, duration):
        sid = telemetry.start_session()
        assert telemetry.log_operation(operation, duration, sid) is None
        assert telemetry.get_session(sid).entries == []


class TestContextManagers:
    """Tests for session() and timed()."""

    def test_session_success(self, telemetry):
        with telemetry.session() as scope:
            with telemetry.timed("Step", scope.id):
                pass
        session = telemetry.get_session(scope.id)
        assert session.succeeded is True
        assert [e.operation for e in session.entries] == ["Step"]

    def test_session_fail_without_exception(self, telemetry):
        with telemetry.session() as scope:
            scope.fail()
        assert telemetry.get_session(scope.id).succeeded is False

    def test_exception_fails_timing_and_session(self, telemetry):
        with pytest.raises(NoTextFoundError):
            with telemetry.session() as scope:
                with telemetry.timed("Text Extraction", scope.id):
                    raise NoTextFoundError()
        session = telemetry.get_session(scope.id)
        assert session.succeeded is False
        assert session.entries[0].operation == "Text Extraction (failed: NoTextFoundError)"

    def test_timed_requires_a_known_session(self, telemetry):
        with pytest.raises(SessionNotFoundError):
            with telemetry.timed("Step", uuid.uuid4()):
                pass

    def test_timed_runs_block_after_session_cancelled(self, telemetry):
        """Cancelling a session never stops the work it was timing."""
        ran = []
        with telemetry.session() as scope:
            telemetry.cancel_all_active_sessions()
            with telemetry.timed("Create Draft", scope.id) as token:
                ran.append(token)
        assert ran == [None]
        session = telemetry.get_session(scope.id)
        assert session.cancelled is True
        assert session.entries == []


class TestDeviceContext:
    """Tests for the psutil-based snapshot helpers."""

    @pytest.mark.parametrize(
        "mb,label",
        [(100, "Low (100MB)"), (200, "Low (200MB)"), (201, "Medium (201MB)"), (501, "High (501MB)")],
    )
    def test_memory_pressure_label(self, mb, label):
        assert memory_pressure_label(mb) == label

    def test_thermal_unknown_without_sensors(self, monkeypatch):
        monkeypatch.setattr(telemetry_module.psutil, "sensors_temperatures", lambda: {}, raising=False)
        assert thermal_state_label() == "Unknown"

    @pytest.mark.parametrize(
        "current,expected",
        [(40.0, "Normal"), (75.0, "Fair"), (85.0, "Serious"), (100.0, "Critical")],
    )
    def test_thermal_levels(self, monkeypatch, current, expected):
        readings = {"coretemp": [Sensor("Core 0", current, 80.0, 95.0)]}
        monkeypatch.setattr(telemetry_module.psutil, "sensors_temperatures", lambda: readings, raising=False)
        assert thermal_state_label() == expected

    def test_hottest_sensor_wins(self, monkeypatch):
        readings = {
            "acpi": [Sensor("a", 30.0, 80.0, 95.0)],
            "coretemp": [Sensor("b", 90.0, 80.0, 95.0)],
        }
        monkeypatch.setattr(telemetry_module.psutil, "sensors_temperatures", lambda: readings, raising=False)
        assert thermal_state_label() == "Serious"

    def test_capture_device_context(self):
        snapshot = capture_device_context(app_version="9.9")
        assert snapshot.app_version == "9.9"
        assert snapshot.memory_pressure.endswith("MB)") or snapshot.memory_pressure == "Unknown"
        assert snapshot.thermal_state in {"Normal", "Fair", "Serious", "Critical", "Unknown"}


class TestReportFormatting:
    """Tests for the plain-text report."""

    def test_no_sessions(self):
        assert format_sessions([]) == "No telemetry sessions recorded."

    def test_report_contains_sessions_and_summary(self, telemetry):
        metadata = ImageMetadata(
            original_width=3000,
            original_height=4000,
            processed_width=1152,
            processed_height=1536,
            original_file_size_bytes=4000,
            processed_file_size_bytes=1000,
            compression_quality=0.6,
        )
        info = ModelInfo(
            service_name="Gemini",
            model_name="gemini-2.5-flash",
            configuration={"thinking": "off"},
            image_metadata=metadata,
        )
        with telemetry.session() as scope:
            telemetry.log_operation("Text Extraction", 2.0, scope.id, model_info=info)
        sid = telemetry.start_session()
        telemetry.cancel_session(sid)

        report = format_sessions(telemetry.recent_sessions())

        assert "=== SESSION 1 ===" in report
        assert "=== SESSION 2 ===" in report
        assert "Status: CANCELLED" in report
        assert "Status: SUCCESS" in report
        assert "model: Gemini / gemini-2.5-flash" in report
        assert "3000x4000 -> 1152x1536" in report
        assert "(ratio 0.25)" in report
        assert "=== SUMMARY ===" in report
        assert "Sessions: 2 (1 succeeded)" in report
        assert "Text Extraction: n=1 avg=2.000s max=2.000s" in report

    def test_open_session_shows_in_progress(self, telemetry):
        sid = telemetry.start_session()
        text = format_session(telemetry.get_session(sid), 7)
        assert text.startswith("=== SESSION 7 ===")
        assert "Status: IN PROGRESS" in text
        assert "(none)" in text
