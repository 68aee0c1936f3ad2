from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Sequence

import httpx
from loguru import logger
from tavily import AsyncTavilyClient

from deepresearch.config import settings
from deepresearch.models.research import SearchStrategy, SubQuery
from deepresearch.models.source import Source, SourceType
from deepresearch.research_core.ports import SearchOptions, SearchResult
from deepresearch.research_core.ranking.credibility import get_domain_credibility
from deepresearch.tools import web_utils
from deepresearch.tools.result_cache import TTLCache

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

STRATEGY_SOURCE_TYPES = {
    SearchStrategy.BROAD: SourceType.GENERAL,
    SearchStrategy.ACADEMIC: SourceType.ACADEMIC,
    SearchStrategy.NEWS: SourceType.NEWS,
    SearchStrategy.TECHNICAL: SourceType.TECHNICAL,
    SearchStrategy.SOCIAL: SourceType.SOCIAL,
    SearchStrategy.OFFICIAL: SourceType.OFFICIAL,
}


@dataclass(slots=True)
class RawResult:
    title: str
    url: str
    content: str
    score: float
    published: str | None = None


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WebSearchAdapter:
    """Brave web search with Tavily fallback, mapped onto Source records."""

    def __init__(
        self,
        *,
        provider: str | None = None,
        brave_api_key: str | None = None,
        tavily_api_key: str | None = None,
        fallback_to_tavily: bool | None = None,
        max_parallel: int | None = None,
        cache: TTLCache[SearchResult] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = (provider or settings.search_provider).lower().strip()
        self.brave_api_key = brave_api_key if brave_api_key is not None else settings.brave_api_key
        self.tavily_api_key = tavily_api_key if tavily_api_key is not None else settings.tavily_api_key
        self.fallback_to_tavily = (
            settings.search_fallback_to_tavily if fallback_to_tavily is None else fallback_to_tavily
        )
        self.max_parallel = max(max_parallel or settings.search_max_parallel_requests, 1)
        self.cache = cache if cache is not None else TTLCache(
            settings.search_cache_ttl_seconds, settings.search_cache_max_entries
        )
        self._transport = transport

    def get_name(self) -> str:
        return self.provider

    async def _brave(self, query: str, options: SearchOptions) -> list[RawResult]:
        if not self.brave_api_key:
            raise RuntimeError("BRAVE_API_KEY is not configured")

        params: dict[str, Any] = {"q": query, "count": options.max_results}
        if options.language:
            params["search_lang"] = options.language

        async with httpx.AsyncClient(timeout=options.timeout_ms / 1000, transport=self._transport) as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params=params,
                headers={"Accept": "application/json", "X-Subscription-Token": self.brave_api_key},
            )
            response.raise_for_status()
            payload = response.json()

        raw_results = payload.get("web", {}).get("results", [])
        total = max(len(raw_results), 1)
        mapped: list[RawResult] = []
        for idx, item in enumerate(raw_results):
            snippets = item.get("extra_snippets", []) or []
            description = item.get("description", "") or ""
            # Brave does not expose a relevance score; use list position.
            mapped.append(
                RawResult(
                    title=item.get("title", ""),
                    url=item.get("url", ""),
                    content=description.strip() or " ".join(snippets).strip(),
                    score=max(0.0, 1.0 - idx / total),
                    published=item.get("page_age"),
                )
            )
        return mapped

    async def _tavily(self, query: str, options: SearchOptions) -> list[RawResult]:
        client = AsyncTavilyClient(api_key=self.tavily_api_key)
        kwargs: dict[str, Any] = {
            "query": query,
            "search_depth": "advanced",
            "max_results": options.max_results,
            "topic": "news" if options.strategy == SearchStrategy.NEWS else "general",
        }
        if options.include_domains:
            kwargs["include_domains"] = options.include_domains
        if options.exclude_domains:
            kwargs["exclude_domains"] = options.exclude_domains

        response = await client.search(**kwargs)
        return [
            RawResult(
                title=r.get("title", ""),
                url=r.get("url", ""),
                content=r.get("content", ""),
                score=float(r.get("score", 0.0) or 0.0),
                published=r.get("published_date"),
            )
            for r in response.get("results", [])
        ]

    async def _fetch(self, query: str, options: SearchOptions) -> list[RawResult]:
        if self.provider == "tavily":
            return await self._tavily(query, options)
        if self.provider != "brave":
            raise ValueError(f"Unsupported SEARCH_PROVIDER: {self.provider}")

        try:
            results = await self._brave(query, options)
        except Exception as exc:
            if not self.fallback_to_tavily:
                raise
            logger.warning(f"Brave search failed for {query!r}, falling back to Tavily: {exc}")
            return await self._tavily(query, options)
        if results or not self.fallback_to_tavily:
            return results
        logger.info(f"Brave returned zero results for {query!r}, falling back to Tavily")
        return await self._tavily(query, options)

    def _to_source(self, raw: RawResult, strategy: SearchStrategy) -> Source:
        domain = web_utils.extract_domain(raw.url)
        return Source(
            id=str(uuid.uuid4()),
            url=raw.url,
            title=raw.title,
            snippet=raw.content or None,
            domain=domain,
            published_at=_parse_date(raw.published),
            source_type=STRATEGY_SOURCE_TYPES.get(strategy, SourceType.GENERAL),
            credibility_score=get_domain_credibility(domain),
            relevance_score=min(1.0, max(0.0, raw.score)),
        )

    async def search(self, query: str, options: SearchOptions) -> SearchResult:
        cache_key = (self.provider, query.strip().lower(), options.max_results, options.strategy.value)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        t0 = time.monotonic()
        raw_results = await self._fetch(query, options)

        excluded = {d.lower() for d in options.exclude_domains}
        included = {d.lower() for d in options.include_domains}
        sources: list[Source] = []
        seen: set[str] = set()
        for raw in raw_results:
            if not web_utils.is_valid_url(raw.url) or raw.url in seen:
                continue
            source = self._to_source(raw, options.strategy)
            if source.domain in excluded or (included and source.domain not in included):
                continue
            seen.add(raw.url)
            sources.append(source)

        result = SearchResult(
            query=query,
            sources=sources[: options.max_results],
            total_found=len(raw_results),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        self.cache.set(cache_key, result)
        return result

    async def search_parallel(
        self, sub_queries: Sequence[SubQuery], options: SearchOptions
    ) -> AsyncIterator[SearchResult]:
        """Yield per-query results as they complete; failed queries are skipped."""
        semaphore = asyncio.Semaphore(self.max_parallel)

        async def run(sub_query: SubQuery) -> SearchResult:
            async with semaphore:
                return await self.search(sub_query.query, replace(options, strategy=sub_query.strategy))

        tasks = [asyncio.create_task(run(sq)) for sq in sub_queries]
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    result = await next_done
                except Exception as exc:
                    logger.warning(f"Parallel search query failed: {exc}")
                    continue
                yield result
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def is_available(self) -> bool:
        if self.provider == "tavily":
            return bool(self.tavily_api_key)
        return bool(self.brave_api_key) or (self.fallback_to_tavily and bool(self.tavily_api_key))
