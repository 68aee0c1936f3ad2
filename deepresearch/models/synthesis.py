from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from deepresearch.models.source import MediaItem


class Citation(BaseModel):
    id: str  # "[1]", "[2]", ...
    source_id: str
    url: str
    title: str
    domain: str
    published_at: Optional[datetime] = None


class Section(BaseModel):
    id: str
    title: str
    content: str
    summary: Optional[str] = None
    citation_ids: list[str] = []
    media: list[MediaItem] = []
    order: int = 0


class KeyFinding(BaseModel):
    id: str
    finding: str
    confidence: Literal["high", "medium", "low"] = "medium"
    citation_ids: list[str] = []
    category: Optional[str] = None


class Synthesis(BaseModel):
    executive_summary: str
    key_findings: list[KeyFinding] = []
    sections: list[Section] = []
    citations: list[Citation] = []
    related_questions: list[str] = []
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


SynthesisEventType = Literal["outline", "summary", "section", "findings", "questions", "complete"]


@dataclass(slots=True)
class SynthesisEvent:
    type: SynthesisEventType
    data: Any = None
