from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from deepresearch.models.content import AnalyzedContent
from deepresearch.models.research import ResearchQuery
from deepresearch.models.source import Source
from deepresearch.models.synthesis import Citation, KeyFinding, Section, Synthesis, SynthesisEvent
from deepresearch.research_core.ports import LLMPort
from deepresearch.services.prompt_store import render_prompt

MAX_FINDINGS = 10
MAX_QUESTIONS = 5


@dataclass(slots=True)
class SynthesisOptions:
    max_summary_words: int = 500
    max_sections: int = 6
    generate_related_questions: bool = True


@dataclass(slots=True)
class OutlineSection:
    title: str
    topics: list[str] = field(default_factory=list)
    source_ids: list[str] = field(default_factory=list)


class OutlineItem(BaseModel):
    title: str
    topics: list[str] = []
    source_indices: list[int] = []


class OutlineOutput(BaseModel):
    sections: list[OutlineItem]


class SectionOutput(BaseModel):
    content: str
    summary: Optional[str] = None
    citation_indices: list[int] = []


class QuestionsOutput(BaseModel):
    questions: list[str]


def format_citations(sources: Sequence[Source]) -> list[Citation]:
    return [
        Citation(
            id=f"[{index}]",
            source_id=source.id,
            url=source.url,
            title=source.title,
            domain=source.domain,
            published_at=source.published_at,
        )
        for index, source in enumerate(sources, start=1)
    ]


def extract_findings(contents: Sequence[AnalyzedContent]) -> list[KeyFinding]:
    """Unique key points in discovery order, citing every source that raised them."""
    cited_by: dict[str, list[str]] = {}
    for index, content in enumerate(contents, start=1):
        for point in content.key_points:
            cited_by.setdefault(point, []).append(f"[{index}]")

    findings: list[KeyFinding] = []
    for rank, (point, citation_ids) in enumerate(list(cited_by.items())[:MAX_FINDINGS]):
        confidence = "high" if rank < 3 else "medium" if rank < 7 else "low"
        findings.append(
            KeyFinding(id=str(uuid.uuid4()), finding=point, confidence=confidence, citation_ids=citation_ids)
        )
    return findings


class LLMSynthesizer:
    """Streams a cited report: outline, summary, sections, findings, questions."""

    def __init__(self, llm: LLMPort, options: SynthesisOptions | None = None):
        self.llm = llm
        self.options = options or SynthesisOptions()

    async def synthesize(
        self,
        analyzed: Sequence[AnalyzedContent],
        sources: Sequence[Source],
        query: ResearchQuery,
    ) -> AsyncIterator[SynthesisEvent]:
        contents = list(analyzed)
        citations = format_citations(sources)

        outline = await self.generate_outline(contents, query)
        yield SynthesisEvent("outline", outline)

        summary = await self.generate_summary(contents)
        yield SynthesisEvent("summary", summary)

        sections: list[Section] = []
        for order, outline_section in enumerate(outline):
            section = await self.generate_section(outline_section, contents, order)
            sections.append(section)
            yield SynthesisEvent("section", section)

        findings = extract_findings(contents)
        yield SynthesisEvent("findings", findings)

        questions: list[str] = []
        if self.options.generate_related_questions:
            questions = await self.generate_related_questions(query, contents)
            yield SynthesisEvent("questions", questions)

        yield SynthesisEvent(
            "complete",
            Synthesis(
                executive_summary=summary,
                key_findings=findings,
                sections=sections,
                citations=citations,
                related_questions=questions,
            ),
        )

    async def generate_outline(self, contents: list[AnalyzedContent], query: ResearchQuery) -> list[OutlineSection]:
        prompt = render_prompt(
            "synthesizer.outline",
            query=query.original_query,
            main_topics=", ".join(query.main_topics),
            topics_summary="\n".join(f"Source {i}: {', '.join(c.topics)}" for i, c in enumerate(contents)),
            key_points_summary="\n".join(
                f"Source {i}: {'; '.join(c.key_points[:3])}" for i, c in enumerate(contents)
            ),
        )
        try:
            response = await self.llm.generate(prompt, OutlineOutput)
        except ValueError as exc:
            logger.warning(f"Outline reply unparseable, using default outline: {exc}")
            return [
                OutlineSection("Overview", list(query.main_topics), [c.source_id for c in contents[:3]]),
                OutlineSection("Key Findings", ["findings", "insights"], [c.source_id for c in contents]),
                OutlineSection("Analysis", ["analysis", "implications"], [c.source_id for c in contents[-3:]]),
            ]

        return [
            OutlineSection(
                title=item.title,
                topics=item.topics,
                source_ids=[contents[i].source_id for i in item.source_indices if 0 <= i < len(contents)],
            )
            for item in response.data.sections[: self.options.max_sections]
        ]

    async def generate_summary(self, contents: list[AnalyzedContent]) -> str:
        key_points = [p for c in contents for p in c.key_points][:15]
        prompt = render_prompt(
            "synthesizer.summary",
            max_words=self.options.max_summary_words,
            key_points="\n".join(f"{i}. {p}" for i, p in enumerate(key_points, start=1)),
        )
        summary = await self.llm.generate_text(prompt)
        if summary:
            return summary
        return (
            f"This research covers {len(contents)} sources on the topic. "
            f"Key findings include: {'; '.join(key_points[:3])}."
        )

    async def generate_section(
        self, outline: OutlineSection, contents: list[AnalyzedContent], order: int = 0
    ) -> Section:
        relevant = [
            c for c in contents if c.source_id in outline.source_ids or any(t in outline.topics for t in c.topics)
        ]
        points = [p for c in relevant for p in c.key_points]
        prompt = render_prompt(
            "synthesizer.section",
            title=outline.title,
            topics=", ".join(outline.topics),
            key_points="\n".join(f"[{i}] {p}" for i, p in enumerate(points, start=1)),
        )
        try:
            response = await self.llm.generate(prompt, SectionOutput)
        except ValueError as exc:
            logger.warning(f"Section reply unparseable for {outline.title!r}: {exc}")
            return Section(
                id=str(uuid.uuid4()),
                title=outline.title,
                content=(
                    f"This section covers {', '.join(outline.topics)} "
                    f"based on {len(outline.source_ids)} sources."
                ),
                order=order,
            )

        data = response.data
        return Section(
            id=str(uuid.uuid4()),
            title=outline.title,
            content=data.content,
            summary=data.summary,
            citation_ids=[f"[{i}]" for i in data.citation_indices],
            order=order,
        )

    async def generate_related_questions(self, query: ResearchQuery, contents: list[AnalyzedContent]) -> list[str]:
        topics = list(dict.fromkeys(t for c in contents for t in c.topics))
        prompt = render_prompt(
            "synthesizer.questions",
            query=query.original_query,
            topics=", ".join(topics),
            findings="; ".join([p for c in contents for p in c.key_points][:5]),
        )
        try:
            response = await self.llm.generate(prompt, QuestionsOutput)
        except ValueError:
            subject = query.main_topics[0] if query.main_topics else query.original_query
            return [
                f"What are the latest developments in {subject}?",
                f"How does {subject} compare to alternatives?",
                "What are the future implications of these findings?",
            ]
        return response.data.questions[:MAX_QUESTIONS]
