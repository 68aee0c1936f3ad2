from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Generic, Protocol, Sequence, TypeVar

from pydantic import BaseModel

from deepresearch.models.content import AnalysisContext, AnalyzedContent, ScrapedContent, ScrapeOptions
from deepresearch.models.research import ResearchQuery, SearchStrategy, SubQuery
from deepresearch.models.source import Source
from deepresearch.models.synthesis import SynthesisEvent

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(slots=True)
class SearchOptions:
    max_results: int = 10
    timeout_ms: int = 30000
    strategy: SearchStrategy = SearchStrategy.BROAD
    language: str | None = None
    exclude_domains: list[str] = field(default_factory=list)
    include_domains: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SearchResult:
    query: str
    sources: list[Source] = field(default_factory=list)
    total_found: int = 0
    duration_ms: int = 0


@dataclass(slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(slots=True)
class LLMResponse(Generic[ModelT]):
    data: ModelT
    usage: TokenUsage = field(default_factory=TokenUsage)


class LLMPort(Protocol):
    async def generate(
        self, prompt: str, output_model: type[ModelT], *, temperature: float | None = None
    ) -> LLMResponse[ModelT]: ...

    async def generate_text(self, prompt: str, *, temperature: float | None = None) -> str: ...

    def stream_text(self, prompt: str, *, temperature: float | None = None) -> AsyncIterator[str]: ...

    async def embed(self, text: str) -> list[float]: ...

    async def similarity(self, text_a: str, text_b: str) -> float: ...


class SearchPort(Protocol):
    async def search(self, query: str, options: SearchOptions) -> SearchResult: ...

    def search_parallel(
        self, sub_queries: Sequence[SubQuery], options: SearchOptions
    ) -> AsyncIterator[SearchResult]: ...


class ScraperPort(Protocol):
    async def scrape(self, url: str, options: ScrapeOptions) -> ScrapedContent: ...

    def scrape_many(self, urls: Sequence[str], options: ScrapeOptions) -> AsyncIterator[ScrapedContent]: ...

    def can_scrape_without_browser(self, url: str) -> bool: ...


class AnalyzerPort(Protocol):
    async def analyze(self, content: str, context: AnalysisContext) -> AnalyzedContent: ...


class SynthesizerPort(Protocol):
    def synthesize(
        self,
        analyzed: Sequence[AnalyzedContent],
        sources: Sequence[Source],
        query: ResearchQuery,
    ) -> AsyncIterator[SynthesisEvent]: ...


@dataclass(slots=True)
class ResearchPorts:
    """External collaborators the orchestrator drives."""

    llm: LLMPort
    search: SearchPort
    scraper: ScraperPort
    analyzer: AnalyzerPort
    synthesizer: SynthesizerPort
