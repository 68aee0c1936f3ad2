from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from deepresearch.models.knowledge_graph import KnowledgeGraph, MindMap
from deepresearch.models.source import Source
from deepresearch.models.synthesis import Synthesis


class EffortLevel(str, Enum):
    STANDARD = "standard"
    DEEP = "deep"
    MAX = "max"


class EffortConfig(BaseModel):
    """Research intensity preset. Bounds mirror what the pipeline can sustain."""
    level: EffortLevel
    max_steps: int = Field(ge=20, le=200)
    timeout_ms: int = Field(ge=120_000, le=2_700_000)
    max_sources: int = Field(ge=10, le=100)
    parallelism: int = Field(ge=5, le=20)
    recursion_depth: int = Field(ge=1, le=3)
    enable_visualizations: bool = True
    auto_stop_on_quality: bool = True
    quality_threshold: float = Field(ge=0.7, le=1)


EFFORT_PRESETS: dict[EffortLevel, EffortConfig] = {
    EffortLevel.STANDARD: EffortConfig(
        level=EffortLevel.STANDARD,
        max_steps=50,
        timeout_ms=300_000,
        max_sources=25,
        parallelism=10,
        recursion_depth=1,
        quality_threshold=0.75,
    ),
    EffortLevel.DEEP: EffortConfig(
        level=EffortLevel.DEEP,
        max_steps=100,
        timeout_ms=900_000,
        max_sources=50,
        parallelism=15,
        recursion_depth=2,
        quality_threshold=0.8,
    ),
    EffortLevel.MAX: EffortConfig(
        level=EffortLevel.MAX,
        max_steps=200,
        timeout_ms=2_700_000,
        max_sources=100,
        parallelism=20,
        recursion_depth=3,
        quality_threshold=0.9,
    ),
}


def build_effort_config(
    level: EffortLevel | str,
    overrides: dict[str, Any] | None = None,
) -> EffortConfig:
    """Merge overrides onto a preset and re-validate the result."""
    preset = EFFORT_PRESETS[EffortLevel(level)]
    if not overrides:
        return preset.model_copy()
    merged = {**preset.model_dump(), **overrides, "level": preset.level}
    return EffortConfig.model_validate(merged)


class SearchStrategy(str, Enum):
    BROAD = "broad"
    ACADEMIC = "academic"
    NEWS = "news"
    TECHNICAL = "technical"
    SOCIAL = "social"
    OFFICIAL = "official"


TemporalFocus = Literal["recent", "historical", "all", "specific"]


class SubQuery(BaseModel):
    id: str
    query: str
    purpose: str = ""
    strategy: SearchStrategy = SearchStrategy.BROAD
    priority: int = Field(default=5, ge=1, le=10)
    parent_id: Optional[str] = None
    depth: int = Field(default=0, ge=0, le=3)


class ResearchQuery(BaseModel):
    id: str
    original_query: str
    refined_query: Optional[str] = None
    main_topics: list[str] = []
    sub_queries: list[SubQuery] = []
    temporal_focus: TemporalFocus = "all"
    language: str = "en"
    effort: EffortConfig
    context: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResearchStatus(str, Enum):
    PENDING = "pending"
    DECOMPOSING = "decomposing"
    SEARCHING = "searching"
    RANKING = "ranking"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    RECURSING = "recursing"
    SYNTHESIZING = "synthesizing"
    VISUALIZING = "visualizing"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class QualityScore(BaseModel):
    overall: float = Field(ge=0, le=1)
    completeness: float = Field(ge=0, le=1)
    accuracy: float = Field(ge=0, le=1)
    depth: float = Field(ge=0, le=1)
    diversity: float = Field(ge=0, le=1)
    coherence: float = Field(ge=0, le=1)
    is_sota: bool


class ResearchStats(BaseModel):
    total_sources: int = 0
    sources_processed: int = 0
    steps_completed: int = 0
    total_steps: int = 0
    search_queries: int = 0
    pages_extracted: int = 0
    duration_ms: int = 0


class ResearchResult(BaseModel):
    id: str
    query: Optional[ResearchQuery] = None
    status: ResearchStatus
    progress: float = Field(ge=0, le=1)
    current_phase: str
    sources: list[Source] = []
    synthesis: Optional[Synthesis] = None
    knowledge_graph: Optional[KnowledgeGraph] = None
    mind_map: Optional[MindMap] = None
    charts: list[dict[str, Any]] = []
    timeline: list[dict[str, Any]] = []
    quality: Optional[QualityScore] = None
    stats: ResearchStats = ResearchStats()
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
