from __future__ import annotations

import uuid
from typing import Literal, Optional

from loguru import logger
from pydantic import BaseModel, Field

from deepresearch.config import settings
from deepresearch.models.content import AnalysisContext, AnalyzedContent, Claim, ContentQuality
from deepresearch.models.knowledge_graph import Entity
from deepresearch.research_core.ports import LLMPort
from deepresearch.services.prompt_store import render_prompt
from deepresearch.tools import web_utils

EXTRACTED_ENTITY_CONFIDENCE = 0.8


class ExtractedEntity(BaseModel):
    name: str
    type: Literal[
        "person", "organization", "location", "concept", "event", "product", "technology", "date", "metric"
    ] = "concept"
    description: Optional[str] = None


class ExtractedClaim(BaseModel):
    statement: str
    confidence: float = Field(default=0.5, ge=0, le=1)
    evidence: str = ""


class QualityAssessment(BaseModel):
    relevance: float = Field(default=0.5, ge=0, le=1)
    factual_density: float = Field(default=0.5, ge=0, le=1)
    clarity: float = Field(default=0.5, ge=0, le=1)


class AnalysisOutput(BaseModel):
    key_points: list[str] = []
    entities: list[ExtractedEntity] = []
    claims: list[ExtractedClaim] = []
    topics: list[str] = []
    sentiment: Literal["positive", "negative", "neutral"] = "neutral"
    quality: QualityAssessment = QualityAssessment()


class LLMContentAnalyzer:
    """Extracts key points, entities and claims from one page of text."""

    def __init__(self, llm: LLMPort, *, max_content_chars: int | None = None):
        self.llm = llm
        self.max_content_chars = max_content_chars or settings.analysis_max_content_chars

    async def analyze(self, content: str, context: AnalysisContext) -> AnalyzedContent:
        content = web_utils.clean_content(content, self.max_content_chars)

        prompt = render_prompt(
            "analyzer.analyze",
            query=context.query,
            topics=", ".join(context.topics),
            content=content,
        )
        try:
            response = await self.llm.generate(prompt, AnalysisOutput)
        except ValueError as exc:
            logger.warning(f"Analysis reply unparseable for source {context.source_id}: {exc}")
            return AnalyzedContent(source_id=context.source_id, topics=list(context.topics))

        data = response.data
        quality = data.quality
        return AnalyzedContent(
            source_id=context.source_id,
            entities=[
                Entity(
                    id=str(uuid.uuid4()),
                    name=e.name,
                    type=e.type,
                    description=e.description,
                    source_ids=[context.source_id],
                    confidence=EXTRACTED_ENTITY_CONFIDENCE,
                )
                for e in data.entities
                if e.name.strip()
            ],
            key_points=[p for p in data.key_points if p.strip()],
            claims=[
                Claim(
                    id=str(uuid.uuid4()),
                    statement=c.statement,
                    confidence=c.confidence,
                    source_id=context.source_id,
                    evidence=c.evidence,
                )
                for c in data.claims
            ],
            sentiment=data.sentiment,
            topics=data.topics,
            quality=ContentQuality(
                relevance=quality.relevance,
                factual_density=quality.factual_density,
                clarity=quality.clarity,
                overall=(quality.relevance + quality.factual_density + quality.clarity) / 3,
            ),
        )
