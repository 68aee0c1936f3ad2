from __future__ import annotations

import uuid
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field

from deepresearch.models.research import (
    EffortConfig,
    EffortLevel,
    ResearchQuery,
    SearchStrategy,
    SubQuery,
    TemporalFocus,
)
from deepresearch.research_core.ports import LLMPort
from deepresearch.services.prompt_store import render_prompt

SUB_QUERY_COUNTS = {
    EffortLevel.STANDARD: 5,
    EffortLevel.DEEP: 10,
    EffortLevel.MAX: 15,
}

# Used when the model reply cannot be parsed.
FALLBACK_VARIANTS: tuple[tuple[str, SearchStrategy, int], ...] = (
    ("{q}", SearchStrategy.BROAD, 10),
    ("{q} research study", SearchStrategy.ACADEMIC, 8),
    ("{q} latest news", SearchStrategy.NEWS, 7),
    ("{q} technical details", SearchStrategy.TECHNICAL, 6),
    ("{q} official report", SearchStrategy.OFFICIAL, 6),
    ("{q} overview", SearchStrategy.BROAD, 5),
    ("{q} discussion and opinions", SearchStrategy.SOCIAL, 4),
    ("{q} statistics and data", SearchStrategy.BROAD, 5),
    ("{q} history", SearchStrategy.BROAD, 4),
    ("{q} challenges", SearchStrategy.BROAD, 4),
    ("{q} future outlook", SearchStrategy.NEWS, 4),
    ("{q} comparison with alternatives", SearchStrategy.BROAD, 3),
    ("{q} case studies", SearchStrategy.ACADEMIC, 3),
    ("{q} expert analysis", SearchStrategy.BROAD, 3),
    ("{q} examples", SearchStrategy.BROAD, 2),
)


class DecomposedSubQuery(BaseModel):
    query: str
    purpose: str = ""
    strategy: SearchStrategy = SearchStrategy.BROAD
    priority: int = Field(default=5, ge=1, le=10)


class Decomposition(BaseModel):
    refined_query: str
    main_topics: list[str] = []
    sub_queries: list[DecomposedSubQuery]
    temporal_focus: TemporalFocus = "all"
    language: str = "en"


def sub_query_count(effort: EffortConfig) -> int:
    return SUB_QUERY_COUNTS[effort.level]


def create_fallback_query(query: str, effort: EffortConfig, context: Optional[str] = None) -> ResearchQuery:
    """Deterministic decomposition built from fixed query variants."""
    sub_queries = [
        SubQuery(
            id=str(uuid.uuid4()),
            query=template.format(q=query),
            purpose=f"Research step {index + 1}",
            strategy=strategy,
            priority=priority,
        )
        for index, (template, strategy, priority) in enumerate(FALLBACK_VARIANTS[: sub_query_count(effort)])
    ]
    return ResearchQuery(
        id=str(uuid.uuid4()),
        original_query=query,
        refined_query=query,
        main_topics=[query],
        sub_queries=sub_queries,
        effort=effort,
        context=context,
    )


class QueryDecomposer:
    """Splits one research question into strategy-tagged sub-queries."""

    def __init__(self, llm: LLMPort):
        self.llm = llm

    async def decompose(self, query: str, effort: EffortConfig, context: Optional[str] = None) -> ResearchQuery:
        count = sub_query_count(effort)
        prompt = render_prompt(
            "decomposer.decompose",
            query=query,
            context_line=f"CONTEXT: {context}" if context else "",
            sub_query_count=count,
        )

        try:
            response = await self.llm.generate(prompt, Decomposition)
        except ValueError as exc:
            logger.warning(f"Query decomposition unparseable, using fallback plan: {exc}")
            return create_fallback_query(query, effort, context)

        decomposition = response.data
        if not decomposition.sub_queries:
            logger.warning("Query decomposition returned no sub-queries, using fallback plan")
            return create_fallback_query(query, effort, context)

        sub_queries = [
            SubQuery(
                id=str(uuid.uuid4()),
                query=item.query,
                purpose=item.purpose,
                strategy=item.strategy,
                priority=item.priority,
            )
            for item in decomposition.sub_queries[:count]
        ]
        return ResearchQuery(
            id=str(uuid.uuid4()),
            original_query=query,
            refined_query=decomposition.refined_query,
            main_topics=decomposition.main_topics,
            sub_queries=sub_queries,
            temporal_focus=decomposition.temporal_focus,
            language=decomposition.language,
            effort=effort,
            context=context,
        )
