from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from deepresearch.agents.analyzer_agent import AnalysisOutput, LLMContentAnalyzer
from deepresearch.agents.query_decomposer import (
    DecomposedSubQuery,
    Decomposition,
    QueryDecomposer,
    create_fallback_query,
)
from deepresearch.agents.synthesizer_agent import (
    LLMSynthesizer,
    OutlineItem,
    OutlineOutput,
    QuestionsOutput,
    SectionOutput,
    extract_findings,
    format_citations,
)
from deepresearch.models.content import AnalysisContext, AnalyzedContent
from deepresearch.models.research import EffortLevel, SearchStrategy, build_effort_config
from deepresearch.models.source import Source
from deepresearch.research_core.ports import LLMResponse


def fake_llm(generate=None, text: str = "") -> MagicMock:
    llm = MagicMock()
    llm.generate = AsyncMock(side_effect=generate)
    llm.generate_text = AsyncMock(return_value=text)
    return llm


def by_model(replies: dict):
    """Answer generate() per output model; models without a reply raise ValueError."""

    async def generate(prompt, output_model, **_kwargs):
        if output_model not in replies:
            raise ValueError("unparseable")
        return LLMResponse(data=replies[output_model])

    return generate


@pytest.mark.parametrize(("level", "count"), [("standard", 5), ("deep", 10), ("max", 15)])
def test_fallback_query_size_follows_effort(level, count):
    effort = build_effort_config(level)
    query = create_fallback_query("fusion energy", effort, "for policy makers")

    assert len(query.sub_queries) == count
    assert query.sub_queries[0].query == "fusion energy"
    assert query.context == "for policy makers"
    assert all(1 <= sq.priority <= 10 for sq in query.sub_queries)


@pytest.mark.asyncio
async def test_decomposer_uses_model_plan_truncated_to_effort():
    plan = Decomposition(
        refined_query="fusion energy commercialization",
        main_topics=["fusion", "energy"],
        sub_queries=[
            DecomposedSubQuery(query=f"q{i}", strategy=SearchStrategy.ACADEMIC, priority=7) for i in range(8)
        ],
        temporal_focus="recent",
    )
    llm = fake_llm(by_model({Decomposition: plan}))

    query = await QueryDecomposer(llm).decompose("fusion energy", build_effort_config(EffortLevel.STANDARD))

    assert [sq.query for sq in query.sub_queries] == ["q0", "q1", "q2", "q3", "q4"]
    assert query.refined_query == "fusion energy commercialization"
    assert query.temporal_focus == "recent"
    assert query.sub_queries[0].strategy == SearchStrategy.ACADEMIC


@pytest.mark.asyncio
async def test_decomposer_falls_back_when_reply_is_unparseable():
    llm = fake_llm(by_model({}))

    query = await QueryDecomposer(llm).decompose("fusion energy", build_effort_config("deep"))

    assert len(query.sub_queries) == 10
    assert query.main_topics == ["fusion energy"]


@pytest.mark.asyncio
async def test_decomposer_falls_back_on_empty_plan():
    llm = fake_llm(by_model({Decomposition: Decomposition(refined_query="x", sub_queries=[])}))

    query = await QueryDecomposer(llm).decompose("fusion energy", build_effort_config("standard"))

    assert len(query.sub_queries) == 5


@pytest.mark.asyncio
async def test_analyzer_maps_model_output():
    output = AnalysisOutput.model_validate(
        {
            "key_points": ["Point one", " "],
            "entities": [{"name": "ITER", "type": "organization"}, {"name": "  "}],
            "claims": [{"statement": "ITER is big", "confidence": 0.7}],
            "topics": ["fusion"],
            "sentiment": "positive",
            "quality": {"relevance": 0.9, "factual_density": 0.6, "clarity": 0.6},
        }
    )
    llm = fake_llm(by_model({AnalysisOutput: output}))
    analyzer = LLMContentAnalyzer(llm, max_content_chars=10)

    analyzed = await analyzer.analyze("x" * 50, AnalysisContext(query="fusion", topics=["energy"], source_id="s1"))

    prompt = llm.generate.call_args.args[0]
    assert "x" * 10 + "..." in prompt
    assert "x" * 11 not in prompt
    assert analyzed.source_id == "s1"
    assert analyzed.key_points == ["Point one"]
    assert [e.name for e in analyzed.entities] == ["ITER"]
    assert analyzed.entities[0].confidence == 0.8
    assert analyzed.entities[0].source_ids == ["s1"]
    assert analyzed.claims[0].source_id == "s1"
    assert analyzed.quality.overall == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_analyzer_returns_minimal_analysis_on_bad_reply():
    analyzer = LLMContentAnalyzer(fake_llm(by_model({})))

    analyzed = await analyzer.analyze("text", AnalysisContext(query="q", topics=["t"], source_id="s1"))

    assert analyzed == AnalyzedContent(source_id="s1", topics=["t"])


def test_format_citations_numbers_sources():
    sources = [
        Source(id="a", url="https://a.com", title="A", domain="a.com"),
        Source(id="b", url="https://b.com", title="B", domain="b.com"),
    ]
    citations = format_citations(sources)
    assert [c.id for c in citations] == ["[1]", "[2]"]
    assert citations[1].source_id == "b"


def test_extract_findings_dedupes_and_grades_confidence():
    contents = [
        AnalyzedContent(source_id="a", key_points=[f"p{i}" for i in range(8)]),
        AnalyzedContent(source_id="b", key_points=["p0", "p8", "p9", "p10"]),
    ]

    findings = extract_findings(contents)

    assert [f.finding for f in findings] == [f"p{i}" for i in range(10)]
    assert findings[0].citation_ids == ["[1]", "[2]"]
    assert [f.confidence for f in findings] == ["high"] * 3 + ["medium"] * 4 + ["low"] * 3


def research_query():
    return create_fallback_query("fusion energy", build_effort_config("standard"))


@pytest.mark.asyncio
async def test_synthesizer_streams_events_and_completes():
    replies = {
        OutlineOutput: OutlineOutput(
            sections=[OutlineItem(title="Overview", topics=["fusion"], source_indices=[0, 7])]
        ),
        SectionOutput: SectionOutput(content="Fusion is near [1].", citation_indices=[1]),
        QuestionsOutput: QuestionsOutput(questions=[f"q{i}" for i in range(7)]),
    }
    llm = fake_llm(by_model(replies), text="Executive summary.")
    contents = [AnalyzedContent(source_id="s1", key_points=["Fusion is near"], topics=["fusion"])]
    sources = [Source(id="s1", url="https://a.com", title="A", domain="a.com")]

    events = [e async for e in LLMSynthesizer(llm).synthesize(contents, sources, research_query())]

    assert [e.type for e in events] == ["outline", "summary", "section", "findings", "questions", "complete"]
    assert events[0].data[0].source_ids == ["s1"]
    synthesis = events[-1].data
    assert synthesis.executive_summary == "Executive summary."
    assert synthesis.sections[0].citation_ids == ["[1]"]
    assert len(synthesis.related_questions) == 5
    assert [c.id for c in synthesis.citations] == ["[1]"]


@pytest.mark.asyncio
async def test_synthesizer_falls_back_when_replies_are_unparseable():
    llm = fake_llm(by_model({}), text="")
    contents = [AnalyzedContent(source_id="s1", key_points=["Point"], topics=["fusion"])]

    events = [e async for e in LLMSynthesizer(llm).synthesize(contents, [], research_query())]

    synthesis = events[-1].data
    assert [s.title for s in synthesis.sections] == ["Overview", "Key Findings", "Analysis"]
    assert "1 sources" in synthesis.executive_summary
    assert len(synthesis.related_questions) == 3
