from __future__ import annotations

from typing import Any

from deepresearch.models.events import EventType, ResearchEvent
from deepresearch.models.research import QualityScore


def phase_started(session_id: str, phase: str, message: str) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.PHASE_STARTED,
        session_id=session_id,
        data={"phase": phase, "message": message},
    )


def phase_completed(session_id: str, phase: str, duration_ms: int) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.PHASE_COMPLETED,
        session_id=session_id,
        data={"phase": phase, "duration_ms": duration_ms},
    )


def step_started(
    session_id: str,
    step_id: str,
    step_type: str,
    description: str,
    parallel_group: int | None = None,
) -> ResearchEvent:
    data: dict[str, Any] = {
        "step_id": step_id,
        "step_type": step_type,
        "description": description,
    }
    if parallel_group is not None:
        data["parallel_group"] = parallel_group
    return ResearchEvent(event=EventType.STEP_STARTED, session_id=session_id, data=data)


def step_completed(
    session_id: str,
    step_id: str,
    *,
    success: bool = True,
    duration_ms: int = 0,
    result_summary: str | None = None,
) -> ResearchEvent:
    data: dict[str, Any] = {
        "step_id": step_id,
        "success": success,
        "duration_ms": duration_ms,
    }
    if result_summary:
        data["result_summary"] = result_summary
    return ResearchEvent(event=EventType.STEP_COMPLETED, session_id=session_id, data=data)


def source_extracted(
    session_id: str, source_id: str, word_count: int, media_count: int
) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.SOURCE_EXTRACTED,
        session_id=session_id,
        data={
            "source_id": source_id,
            "word_count": word_count,
            "media_count": media_count,
        },
    )


def finding_discovered(
    session_id: str,
    finding: str,
    source_ids: list[str],
    confidence: str = "medium",
) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.FINDING_DISCOVERED,
        session_id=session_id,
        data={"finding": finding, "confidence": confidence, "source_ids": source_ids},
    )


def progress_update(
    session_id: str,
    progress: float,
    message: str,
    stats: dict[str, int],
) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.PROGRESS_UPDATE,
        session_id=session_id,
        data={"progress": progress, "message": message, "stats": stats},
    )


def quality_check(
    session_id: str, quality: QualityScore, auto_stop_on_quality: bool
) -> ResearchEvent:
    data: dict[str, Any] = {
        "score": quality.overall,
        "is_sota": quality.is_sota,
        "should_stop": quality.is_sota and auto_stop_on_quality,
    }
    if quality.is_sota:
        data["reason"] = "SOTA quality threshold reached"
    return ResearchEvent(event=EventType.QUALITY_CHECK, session_id=session_id, data=data)


def error(
    session_id: str,
    message: str,
    *,
    recoverable: bool = False,
    step_id: str | None = None,
) -> ResearchEvent:
    data: dict[str, Any] = {"error": message, "recoverable": recoverable}
    if step_id:
        data["step_id"] = step_id
    return ResearchEvent(event=EventType.ERROR, session_id=session_id, data=data)


def completed(session_id: str, total_duration_ms: int, final_quality: float) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.COMPLETED,
        session_id=session_id,
        data={"total_duration_ms": total_duration_ms, "final_quality": final_quality},
    )
