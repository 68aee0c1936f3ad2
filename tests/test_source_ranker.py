from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from deepresearch.models.source import MediaItem, Source, SourceType
from deepresearch.research_core.ranking.credibility import get_domain_credibility, requires_javascript
from deepresearch.research_core.ranking.ranker import RankingCriteria, RankingWeights, SourceRanker

NOW = datetime(2026, 1, 15, tzinfo=timezone.utc)


def make_source(n: int, domain: str, **kwargs) -> Source:
    return Source(id=f"s{n}", url=f"https://{domain}/{n}", title=kwargs.pop("title", f"Title {n}"), domain=domain, **kwargs)


def test_domain_credibility_tiers():
    assert get_domain_credibility("arxiv.org") == 0.95
    assert get_domain_credibility("data.gov") == 0.9
    assert get_domain_credibility("reuters.com") == 0.8
    assert get_domain_credibility("random-blog.net") == 0.5


def test_requires_javascript_for_social_domains():
    assert requires_javascript("twitter.com")
    assert not requires_javascript("example.com")


def test_diversify_keeps_first_two_per_domain_in_order():
    domains = ["a.com", "b.com", "a.com", "c.com", "a.com", "d.com", "e.com", "f.com", "a.com", "g.com"]
    sources = [make_source(i + 1, domain) for i, domain in enumerate(domains)]

    kept = SourceRanker().diversify(sources, 2)

    assert len(kept) == 8
    assert [s.id for s in kept if s.domain == "a.com"] == ["s1", "s3"]
    assert [s.id for s in kept] == [s.id for s in sources if s in kept]


def test_rank_produces_contiguous_ranks_and_non_increasing_scores():
    sources = [
        make_source(1, "example.com", word_count=3000),
        make_source(2, "arxiv.org", title="quantum error correction"),
        make_source(3, "example.com", published_at=NOW - timedelta(days=2)),
        make_source(4, "nature.com", media=[MediaItem(type="image", url="https://nature.com/a.png")]),
        make_source(5, "blog.net", relevance_score=0.9),
    ]

    ranked = SourceRanker(now=NOW).rank(sources, RankingCriteria(query="quantum error correction"))

    assert [r.rank for r in ranked] == [1, 2, 3, 4, 5]
    scores = [r.final_score for r in ranked]
    assert scores == sorted(scores, reverse=True)
    assert all(0 <= s <= 1 for s in scores)
    assert ranked[0].id == "s2"


def test_rank_preferred_types_partition_is_stable():
    sources = [
        make_source(1, "arxiv.org", source_type=SourceType.ACADEMIC),
        make_source(2, "blog.net", source_type=SourceType.NEWS),
        make_source(3, "other.net", source_type=SourceType.NEWS, word_count=2500),
        make_source(4, "nature.com", source_type=SourceType.ACADEMIC, word_count=2500),
    ]

    ranked = SourceRanker(now=NOW).rank(
        sources, RankingCriteria(query="topic", preferred_types=[SourceType.NEWS])
    )

    assert [r.source_type for r in ranked[:2]] == [SourceType.NEWS, SourceType.NEWS]
    assert [r.rank for r in ranked] == [1, 2, 3, 4]
    for partition in (ranked[:2], ranked[2:]):
        scores = [r.final_score for r in partition]
        assert scores == sorted(scores, reverse=True)


def test_rank_drops_excluded_domains():
    sources = [make_source(1, "spam.com"), make_source(2, "example.com")]

    ranked = SourceRanker().rank(sources, RankingCriteria(query="x", excluded_domains=["SPAM.com"]))

    assert [r.id for r in ranked] == ["s2"]


def test_repeated_domain_lowers_diversity_score():
    sources = [make_source(1, "example.com"), make_source(2, "example.com")]

    ranked = SourceRanker(now=NOW).rank(sources, RankingCriteria(query="unrelated"))

    first, second = sorted(ranked, key=lambda r: r.id)
    assert first.final_score - second.final_score == pytest.approx(0.3 * 0.10)


def test_recency_buckets():
    ranker = SourceRanker(now=NOW)
    assert ranker._recency(None) == 0.5
    assert ranker._recency(NOW - timedelta(days=3)) == 1.0
    assert ranker._recency(NOW - timedelta(days=20)) == 0.9
    assert ranker._recency(NOW - timedelta(days=200)) == 0.6
    assert ranker._recency(datetime(2020, 1, 1)) == 0.2


def test_filter_by_credibility():
    sources = [make_source(1, "arxiv.org"), make_source(2, "random.net")]
    assert [s.id for s in SourceRanker().filter_by_credibility(sources, 0.9)] == ["s1"]


def test_set_weights_rejects_unknown_names():
    ranker = SourceRanker()
    ranker.set_weights(relevance=0.5)
    assert ranker.weights == RankingWeights(relevance=0.5)
    with pytest.raises(ValueError):
        ranker.set_weights(popularity=1.0)
