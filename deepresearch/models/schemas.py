from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from deepresearch.models.research import EffortLevel


# --- Requests ---


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1)
    effort: Optional[EffortLevel] = None
    context: Optional[str] = None
    overrides: dict[str, Any] = {}


# --- Responses ---


class EffortInfo(BaseModel):
    level: EffortLevel
    max_sources: int
    parallelism: int
    recursion_depth: int
    quality_threshold: float
    timeout_ms: int


class EffortsResponse(BaseModel):
    efforts: list[EffortInfo]
