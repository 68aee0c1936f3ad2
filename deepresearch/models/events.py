from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(str, Enum):
    PHASE_STARTED = "phase-started"
    PHASE_COMPLETED = "phase-completed"
    STEP_STARTED = "step-started"
    STEP_COMPLETED = "step-completed"
    SOURCE_EXTRACTED = "source-extracted"
    FINDING_DISCOVERED = "finding-discovered"
    PROGRESS_UPDATE = "progress-update"
    QUALITY_CHECK = "quality-check"
    ERROR = "error"
    COMPLETED = "completed"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ResearchEvent:
    event: EventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }
