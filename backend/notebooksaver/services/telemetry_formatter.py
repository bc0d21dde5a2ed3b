"""Plain-text performance report for GET /api/telemetry/report."""

from collections import defaultdict
from typing import Dict, List, Sequence

from notebooksaver.schemas.telemetry import LogEntry, TelemetrySession

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _status(session: TelemetrySession) -> str:
    if session.end is None:
        return "IN PROGRESS"
    if session.cancelled:
        return "CANCELLED"
    return "SUCCESS" if session.succeeded else "FAILED"


def _format_entry(entry: LogEntry) -> List[str]:
    lines = [f"  - {entry.operation}: {entry.duration:.3f}s"]
    info = entry.model_info
    if info is not None:
        lines.append(f"      model: {info.service_name} / {info.model_name}")
        for key, value in sorted((info.configuration or {}).items()):
            lines.append(f"      {key}: {value}")
        meta = info.image_metadata
        if meta is not None:
            lines.append(
                f"      image: {meta.original_width}x{meta.original_height} -> "
                f"{meta.processed_width}x{meta.processed_height}, "
                f"{meta.original_file_size_bytes} -> {meta.processed_file_size_bytes} bytes "
                f"(ratio {meta.compression_ratio:.2f})"
            )
    ctx = entry.device_context
    lines.append(f"      memory: {ctx.memory_pressure}, thermal: {ctx.thermal_state}")
    return lines


def format_session(session: TelemetrySession, number: int) -> str:
    ctx = session.device_context
    lines = [
        f"=== SESSION {number} ===",
        f"Started: {session.start.strftime(_TIME_FORMAT)}",
        f"Status: {_status(session)}",
    ]
    if session.total_duration is not None:
        lines.append(f"Total: {session.total_duration:.3f}s")
    lines.append(f"Device: {ctx.device_model}, {ctx.os_version}, app {ctx.app_version}")
    lines.append("Operations:")
    if not session.entries:
        lines.append("  (none)")
    for entry in session.entries:
        lines.extend(_format_entry(entry))
    return "\n".join(lines)


def format_summary(sessions: Sequence[TelemetrySession]) -> str:
    """Per-operation count / mean / max across all sessions."""
    durations: Dict[str, List[float]] = defaultdict(list)
    for session in sessions:
        for entry in session.entries:
            durations[entry.operation].append(entry.duration)
    succeeded = sum(1 for s in sessions if s.succeeded)
    lines = [
        "=== SUMMARY ===",
        f"Sessions: {len(sessions)} ({succeeded} succeeded)",
    ]
    for operation in sorted(durations):
        values = durations[operation]
        lines.append(
            f"  {operation}: n={len(values)} "
            f"avg={sum(values) / len(values):.3f}s max={max(values):.3f}s"
        )
    return "\n".join(lines)


def format_sessions(sessions: Sequence[TelemetrySession]) -> str:
    """Sessions numbered from 1 in the order given, followed by the summary."""
    if not sessions:
        return "No telemetry sessions recorded."
    blocks = [format_session(s, i) for i, s in enumerate(sessions, start=1)]
    blocks.append(format_summary(sessions))
    return "\n\n".join(blocks)
