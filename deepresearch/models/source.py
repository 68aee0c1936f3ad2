from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    ACADEMIC = "academic"
    NEWS = "news"
    SOCIAL = "social"
    TECHNICAL = "technical"
    OFFICIAL = "official"
    GENERAL = "general"


class MediaItem(BaseModel):
    type: str  # image | video | audio | document
    url: str
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class Source(BaseModel):
    """A discovered web resource. Unique by URL within a research session."""
    id: str
    url: str
    title: str = ""
    snippet: Optional[str] = None
    domain: str = ""
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    source_type: SourceType = SourceType.GENERAL
    credibility_score: float = Field(default=0.5, ge=0, le=1)
    relevance_score: float = Field(default=0.5, ge=0, le=1)
    media: list[MediaItem] = []
    word_count: Optional[int] = None
    language: Optional[str] = None


class RankedSource(Source):
    rank: int = Field(ge=1)
    final_score: float = Field(ge=0, le=1)
