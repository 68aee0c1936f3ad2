from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Sequence

from deepresearch.models.source import RankedSource, Source, SourceType
from deepresearch.research_core.ranking.credibility import get_domain_credibility


@dataclass(slots=True)
class RankingWeights:
    credibility: float = 0.25
    relevance: float = 0.35
    recency: float = 0.15
    diversity: float = 0.10
    depth: float = 0.15


@dataclass(slots=True)
class RankingCriteria:
    query: str
    topics: list[str] = field(default_factory=list)
    prefer_recent: bool = False
    preferred_types: list[SourceType] | None = None
    excluded_domains: list[str] | None = None


class SourceRanker:
    """Scores sources on five weighted signals and orders them best-first."""

    def __init__(self, weights: RankingWeights | None = None, *, now: datetime | None = None):
        self.weights = weights or RankingWeights()
        self._now = now

    def rank(self, sources: Sequence[Source], criteria: RankingCriteria) -> list[RankedSource]:
        excluded = {d.lower() for d in criteria.excluded_domains or []}
        candidates = [s for s in sources if s.domain.lower() not in excluded]

        seen_domains: dict[str, int] = {}
        scored: list[tuple[Source, float, float]] = []
        for source in candidates:
            relevance = self._relevance(source, criteria)
            # Diversity is order-dependent: later entries from a domain score lower.
            occurrences = seen_domains.get(source.domain, 0)
            seen_domains[source.domain] = occurrences + 1
            diversity = max(0.0, 1 - occurrences * 0.3)

            w = self.weights
            final_score = (
                self.get_credibility_score(source.domain) * w.credibility
                + relevance * w.relevance
                + self._recency(source.published_at) * w.recency
                + diversity * w.diversity
                + self._depth(source) * w.depth
            )
            scored.append((source, min(1.0, max(0.0, final_score)), relevance))

        scored.sort(key=lambda item: item[1], reverse=True)
        if criteria.preferred_types:
            preferred = set(criteria.preferred_types)
            # sort() is stable, so score order survives inside each partition.
            scored.sort(key=lambda item: item[0].source_type not in preferred)

        return [
            RankedSource(
                **source.model_dump(exclude={"relevance_score"}),
                relevance_score=relevance,
                rank=index,
                final_score=final_score,
            )
            for index, (source, final_score, relevance) in enumerate(scored, start=1)
        ]

    def filter_by_credibility(self, sources: Sequence[Source], min_score: float) -> list[Source]:
        return [s for s in sources if self.get_credibility_score(s.domain) >= min_score]

    def diversify(self, sources: Sequence[Source], max_per_domain: int) -> list[Source]:
        """Keep at most max_per_domain entries per domain, preserving input order."""
        counts: dict[str, int] = {}
        kept: list[Source] = []
        for source in sources:
            count = counts.get(source.domain, 0)
            if count >= max_per_domain:
                continue
            counts[source.domain] = count + 1
            kept.append(source)
        return kept

    def get_credibility_score(self, domain: str) -> float:
        return get_domain_credibility(domain)

    def set_weights(self, **weights: float) -> None:
        unknown = set(weights) - set(asdict(self.weights))
        if unknown:
            raise ValueError(f"Unknown ranking weights: {sorted(unknown)}")
        self.weights = replace(self.weights, **weights)

    def _relevance(self, source: Source, criteria: RankingCriteria) -> float:
        score = source.relevance_score or 0.5

        terms = criteria.query.lower().split()
        if terms:
            title = source.title.lower()
            matched = sum(1 for term in terms if term in title)
            score += matched / len(terms) * 0.3

        if source.snippet:
            snippet = source.snippet.lower()
            topic_hits = sum(1 for topic in criteria.topics if topic.lower() in snippet)
            score += topic_hits / max(len(criteria.topics), 1) * 0.2

        return min(1.0, score)

    def _recency(self, published_at: datetime | None) -> float:
        if published_at is None:
            return 0.5
        if published_at.tzinfo is None:
            published_at = published_at.replace(tzinfo=timezone.utc)
        now = self._now or datetime.now(timezone.utc)
        age_days = (now - published_at).total_seconds() / 86400

        if age_days <= 7:
            return 1.0
        if age_days <= 30:
            return 0.9
        if age_days <= 90:
            return 0.8
        if age_days <= 365:
            return 0.6
        if age_days <= 730:
            return 0.4
        return 0.2

    @staticmethod
    def _depth(source: Source) -> float:
        score = 0.5
        words = source.word_count or 0
        if words > 2000:
            score += 0.3
        elif words > 1000:
            score += 0.2
        elif words > 500:
            score += 0.1
        if source.media:
            score += min(0.2, len(source.media) * 0.05)
        return min(1.0, score)
