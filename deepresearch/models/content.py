from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from deepresearch.models.knowledge_graph import Entity
from deepresearch.models.source import MediaItem


@dataclass(slots=True)
class ScrapeOptions:
    timeout_ms: int = 15000
    extract_media: bool = True
    max_content_length: int = 50000
    follow_redirects: bool = True
    user_agent: str | None = None


class ScrapedContent(BaseModel):
    url: str
    title: str = ""
    content: str = ""
    excerpt: str = ""
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    media: list[MediaItem] = []
    word_count: int = 0
    language: Optional[str] = None
    success: bool = True
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass(slots=True)
class AnalysisContext:
    query: str
    topics: list[str] = field(default_factory=list)
    source_id: str = ""


class Claim(BaseModel):
    id: str
    statement: str
    confidence: float = Field(default=0.5, ge=0, le=1)
    source_id: str = ""
    evidence: str = ""


class ContentQuality(BaseModel):
    relevance: float = Field(default=0.5, ge=0, le=1)
    factual_density: float = Field(default=0.5, ge=0, le=1)
    clarity: float = Field(default=0.5, ge=0, le=1)
    overall: float = Field(default=0.5, ge=0, le=1)


class AnalyzedContent(BaseModel):
    source_id: str
    entities: list[Entity] = []
    key_points: list[str] = []
    claims: list[Claim] = []
    sentiment: Optional[Literal["positive", "negative", "neutral"]] = None
    topics: list[str] = []
    quality: ContentQuality = ContentQuality()
