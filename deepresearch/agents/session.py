from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from deepresearch.models.content import AnalyzedContent, ScrapedContent
from deepresearch.models.research import (
    QualityScore,
    ResearchQuery,
    ResearchResult,
    ResearchStats,
    ResearchStatus,
)
from deepresearch.models.source import RankedSource, Source


@dataclass
class ResearchSession:
    """Mutable state of one orchestration run."""

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    query: Optional[ResearchQuery] = None
    sources: dict[str, Source] = field(default_factory=dict)  # by URL
    ranked_sources: list[RankedSource] = field(default_factory=list)
    scraped: dict[str, ScrapedContent] = field(default_factory=dict)  # by URL
    analyzed: dict[str, AnalyzedContent] = field(default_factory=dict)  # by source id
    steps_completed: int = 0
    total_steps: int = 0
    search_queries: int = 0
    quality: Optional[QualityScore] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_monotonic: float = field(default_factory=time.monotonic)

    def add_source(self, source: Source, limit: int | None = None) -> bool:
        """Insert a source unless its URL is known or the limit is reached."""
        if source.url in self.sources:
            return False
        if limit is not None and len(self.sources) >= limit:
            return False
        self.sources[source.url] = source
        return True

    @property
    def progress(self) -> float:
        return min(1.0, self.steps_completed / max(self.total_steps, 1))

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_monotonic) * 1000)

    def stats_snapshot(self) -> dict[str, int]:
        return {
            "sources_found": len(self.sources),
            "sources_processed": len(self.scraped),
            "steps_completed": self.steps_completed,
            "total_steps": self.total_steps,
        }

    def build_result(self, status: ResearchStatus, error: str | None = None, **extra) -> ResearchResult:
        completed = status == ResearchStatus.COMPLETED
        return ResearchResult(
            id=self.session_id,
            query=self.query,
            status=status,
            progress=1.0 if completed else self.progress,
            current_phase=status.value,
            sources=list(self.sources.values()),
            quality=self.quality,
            stats=ResearchStats(
                total_sources=len(self.sources),
                sources_processed=len(self.scraped),
                steps_completed=self.steps_completed,
                total_steps=self.total_steps,
                search_queries=self.search_queries,
                pages_extracted=len(self.scraped),
                duration_ms=self.elapsed_ms,
            ),
            started_at=self.started_at,
            completed_at=datetime.now(timezone.utc) if completed else None,
            error=error,
            **extra,
        )

    def clear(self) -> None:
        self.sources.clear()
        self.ranked_sources = []
        self.scraped.clear()
        self.analyzed.clear()
