from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from deepresearch.models.research import SearchStrategy, SubQuery
from deepresearch.models.source import SourceType
from deepresearch.research_core.ports import SearchOptions
from deepresearch.tools.web_search import WebSearchAdapter

BRAVE_PAYLOAD = {
    "web": {
        "results": [
            {"title": "Paper", "url": "https://arxiv.org/abs/1", "description": "A paper", "page_age": "2025-01-02T00:00:00"},
            {"title": "Dup", "url": "https://arxiv.org/abs/1", "description": "Again"},
            {"title": "Spam", "url": "https://spam.com/x", "description": "Spam"},
            {"title": "Broken", "url": "ftp://files.example.com/x", "description": "Nope"},
            {"title": "Blog", "url": "https://www.blog.net/post", "extra_snippets": ["snippet text"]},
        ]
    }
}


def brave_transport(calls: list[httpx.Request], payload=BRAVE_PAYLOAD, status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


def make_adapter(transport, **kwargs) -> WebSearchAdapter:
    defaults = dict(provider="brave", brave_api_key="brave-key", tavily_api_key="tavily-key", fallback_to_tavily=False)
    defaults.update(kwargs)
    return WebSearchAdapter(transport=transport, **defaults)


@pytest.mark.asyncio
async def test_brave_results_are_mapped_filtered_and_cached():
    calls: list[httpx.Request] = []
    adapter = make_adapter(brave_transport(calls))
    options = SearchOptions(max_results=10, strategy=SearchStrategy.ACADEMIC, exclude_domains=["spam.com"])

    result = await adapter.search("fusion", options)
    again = await adapter.search("  FUSION ", options)

    assert [s.url for s in result.sources] == ["https://arxiv.org/abs/1", "https://www.blog.net/post"]
    paper, blog = result.sources
    assert paper.domain == "arxiv.org"
    assert paper.credibility_score == 0.95
    assert paper.source_type == SourceType.ACADEMIC
    assert paper.published_at.year == 2025
    assert blog.domain == "blog.net"
    assert blog.snippet == "snippet text"
    assert result.total_found == 5
    assert again is result
    assert len(calls) == 1
    assert calls[0].headers["X-Subscription-Token"] == "brave-key"


@pytest.mark.asyncio
async def test_brave_failure_falls_back_to_tavily():
    calls: list[httpx.Request] = []
    adapter = make_adapter(brave_transport(calls, status=500), fallback_to_tavily=True)

    with patch("deepresearch.tools.web_search.AsyncTavilyClient") as tavily_cls:
        tavily_cls.return_value.search = AsyncMock(
            return_value={"results": [{"title": "T", "url": "https://bbc.com/a", "content": "c", "score": 0.7}]}
        )
        result = await adapter.search("fusion", SearchOptions(strategy=SearchStrategy.NEWS))

    assert [s.url for s in result.sources] == ["https://bbc.com/a"]
    assert result.sources[0].relevance_score == 0.7
    assert tavily_cls.return_value.search.call_args.kwargs["topic"] == "news"


@pytest.mark.asyncio
async def test_brave_failure_without_fallback_raises():
    adapter = make_adapter(brave_transport([], status=500))

    with pytest.raises(httpx.HTTPStatusError):
        await adapter.search("fusion", SearchOptions())


@pytest.mark.asyncio
async def test_unsupported_provider_raises_value_error():
    adapter = make_adapter(brave_transport([]), provider="unknown-provider")

    with pytest.raises(ValueError):
        await adapter.search("fusion", SearchOptions())


@pytest.mark.asyncio
async def test_search_parallel_skips_failed_queries():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["q"] == "broken":
            return httpx.Response(500)
        return httpx.Response(200, json=BRAVE_PAYLOAD)

    adapter = make_adapter(httpx.MockTransport(handler))
    sub_queries = [
        SubQuery(id="1", query="fusion", purpose="", strategy=SearchStrategy.BROAD, priority=5),
        SubQuery(id="2", query="broken", purpose="", strategy=SearchStrategy.BROAD, priority=5),
    ]

    results = [r async for r in adapter.search_parallel(sub_queries, SearchOptions())]

    assert [r.query for r in results] == ["fusion"]


@pytest.mark.asyncio
async def test_is_available_reflects_keys():
    assert await make_adapter(None).is_available()
    assert not await make_adapter(None, brave_api_key="", tavily_api_key="").is_available()
    assert make_adapter(None).get_name() == "brave"
