from __future__ import annotations

import httpx
import pytest

from deepresearch.models.content import ScrapeOptions
from deepresearch.tools.result_cache import TTLCache
from deepresearch.tools.web_scraper import WebScraper, parse_html

PAGE = """
<html lang="en-US">
<head>
  <title>Fusion  Update</title>
  <meta name="description" content="Latest on fusion">
  <meta name="author" content="Jane Doe">
  <meta property="article:published_time" content="2025-06-01T10:00:00Z">
</head>
<body>
  <nav>Menu items</nav>
  <main>
    <h1>Fusion progress</h1>
    <p>Reactors reached a new record.</p>
    <img src="/img/reactor.png" alt="Reactor">
    <iframe src="https://www.youtube.com/embed/abc"></iframe>
  </main>
  <script>var tracking = 1;</script>
  <footer>Copyright</footer>
</body>
</html>
"""


def test_parse_html_extracts_main_content_and_metadata():
    content = parse_html("https://example.com/news/1", PAGE, ScrapeOptions())

    assert content.success
    assert content.title == "Fusion Update"
    assert content.excerpt == "Latest on fusion"
    assert content.author == "Jane Doe"
    assert content.published_at.year == 2025
    assert content.language == "en"
    assert "Reactors reached a new record." in content.content
    assert "Menu items" not in content.content
    assert "tracking" not in content.content
    assert [m.type for m in content.media] == ["image", "video"]
    assert content.media[0].url == "https://example.com/img/reactor.png"
    assert content.word_count == len(content.content.split())


def test_parse_html_truncates_long_content():
    html = "<html><body><main>" + "word " * 100 + "</main></body></html>"
    content = parse_html("https://example.com", html, ScrapeOptions(max_content_length=20, extract_media=False))
    assert content.content.endswith("...")
    assert len(content.content) == 23


def test_can_scrape_without_browser():
    scraper = WebScraper()
    assert scraper.can_scrape_without_browser("https://example.com/a")
    assert not scraper.can_scrape_without_browser("https://twitter.com/someone")
    assert not scraper.can_scrape_without_browser("not a url")


@pytest.mark.asyncio
async def test_scrape_retries_server_errors_then_caches():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, text=PAGE)

    scraper = WebScraper(retry_max=1, transport=httpx.MockTransport(handler))
    options = ScrapeOptions()

    first = await scraper.scrape("https://example.com/news/1", options)
    second = await scraper.scrape("https://EXAMPLE.com/news/1", options)

    assert first.success
    assert second.content == first.content
    assert second.url == "https://EXAMPLE.com/news/1"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_cache_hit_keeps_the_requested_url():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, text=PAGE)

    scraper = WebScraper(transport=httpx.MockTransport(handler))
    options = ScrapeOptions()

    bare = await scraper.scrape("https://a.com", options)
    slashed = await scraper.scrape("https://a.com/", options)

    assert bare.url == "https://a.com"
    assert slashed.url == "https://a.com/"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_scrape_does_not_retry_client_errors():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(404)

    scraper = WebScraper(retry_max=3, cache=TTLCache(0), transport=httpx.MockTransport(handler))

    result = await scraper.scrape("https://example.com/missing", ScrapeOptions())

    assert not result.success
    assert result.error == "HTTP 404"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_scrape_many_yields_in_input_order():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/bad":
            return httpx.Response(404)
        return httpx.Response(200, text=f"<html><head><title>{request.url.path}</title></head><body>ok</body></html>")

    scraper = WebScraper(retry_max=0, transport=httpx.MockTransport(handler))
    urls = ["https://example.com/a", "https://example.com/bad", "https://example.com/c"]

    results = [r async for r in scraper.scrape_many(urls, ScrapeOptions())]

    assert [r.url for r in results] == urls
    assert [r.success for r in results] == [True, False, True]
    assert results[2].title == "/c"
