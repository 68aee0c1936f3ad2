from __future__ import annotations

from typing import Iterable

from deepresearch.models.research import QualityScore
from deepresearch.models.source import Source

# Not yet derived from analysis output.
PLACEHOLDER_ACCURACY = 0.8
PLACEHOLDER_COHERENCE = 0.8


class QualityAssessor:
    """Composite score of how complete, deep and varied the gathered evidence is."""

    def __init__(self, max_sources: int, quality_threshold: float):
        self.max_sources = max_sources
        self.quality_threshold = quality_threshold

    def assess(self, sources: Iterable[Source], analyzed_count: int) -> QualityScore:
        sources = list(sources)
        source_count = len(sources)

        completeness = min(1.0, source_count / max(self.max_sources, 1))
        depth = min(1.0, analyzed_count / max(source_count, 1))
        diversity = self.diversity(sources)
        overall = completeness * 0.3 + depth * 0.4 + diversity * 0.3

        return QualityScore(
            overall=min(1.0, overall),
            completeness=completeness,
            accuracy=PLACEHOLDER_ACCURACY,
            depth=depth,
            diversity=diversity,
            coherence=PLACEHOLDER_COHERENCE,
            is_sota=overall >= self.quality_threshold,
        )

    @staticmethod
    def diversity(sources: list[Source]) -> float:
        domains = {s.domain for s in sources}
        types = {s.source_type for s in sources}
        return min(1.0, (len(domains) / 10 + len(types) / 5) / 2)
