from __future__ import annotations

import asyncio
import random
import re
import time
from datetime import datetime, timezone
from typing import AsyncIterator, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from deepresearch.config import settings
from deepresearch.models.content import ScrapedContent, ScrapeOptions
from deepresearch.models.source import MediaItem
from deepresearch.research_core.ranking.credibility import requires_javascript
from deepresearch.tools import web_utils
from deepresearch.tools.result_cache import TTLCache, canonical_url

USER_AGENTS = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

NON_CONTENT_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside", "form")
MAX_IMAGES = 10
MAX_MEDIA = 15


def _normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _meta(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str | None:
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    content = tag.get("content") if tag else None
    return content.strip() if isinstance(content, str) and content.strip() else None


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def extract_media(soup: BeautifulSoup, base_url: str) -> list[MediaItem]:
    media: list[MediaItem] = []
    for img in soup.find_all("img", src=True):
        if len(media) >= MAX_IMAGES:
            break
        src = urljoin(base_url, img["src"])
        if src.startswith("data:") or "pixel" in src:
            continue
        media.append(MediaItem(type="image", url=src, title=img.get("alt") or None))

    for iframe in soup.find_all("iframe", src=True):
        if len(media) >= MAX_MEDIA:
            break
        src = iframe["src"]
        if any(host in src for host in ("youtube.com", "youtu.be", "vimeo.com")):
            media.append(MediaItem(type="video", url=urljoin(base_url, src)))
    return media


def parse_html(url: str, html: str, options: ScrapeOptions, duration_ms: int = 0) -> ScrapedContent:
    """Pull title, metadata, main text and media out of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")

    title = _normalize_text(soup.title.get_text()) if soup.title else ""
    excerpt = _meta(soup, name="description") or _meta(soup, prop="og:description") or ""
    author = _meta(soup, name="author") or _meta(soup, prop="article:author")
    published_raw = _meta(soup, prop="article:published_time")
    if published_raw is None:
        time_tag = soup.find("time", datetime=True)
        published_raw = time_tag["datetime"] if time_tag else None
    html_tag = soup.find("html")
    lang = html_tag.get("lang") if html_tag else None
    media = extract_media(soup, url) if options.extract_media else []

    for tag in soup.find_all(list(NON_CONTENT_TAGS)):
        tag.decompose()
    main = soup.find("main") or soup.find("article") or soup.find("div", class_=re.compile("content")) or soup.body or soup
    content = _normalize_text(main.get_text("\n"))
    if len(content) > options.max_content_length:
        content = content[: options.max_content_length] + "..."

    return ScrapedContent(
        url=url,
        title=title,
        content=content,
        excerpt=excerpt,
        author=author,
        published_at=_parse_date(published_raw),
        media=media,
        word_count=web_utils.word_count(content),
        language=lang[:2].lower() if isinstance(lang, str) and lang else None,
        success=True,
        duration_ms=duration_ms,
    )


class WebScraper:
    """HTTP-only page extraction with retries and a per-instance result cache."""

    def __init__(
        self,
        *,
        retry_max: int | None = None,
        max_parallel: int | None = None,
        cache: TTLCache[ScrapedContent] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.retry_max = max(settings.scrape_retry_max if retry_max is None else retry_max, 0)
        self.max_parallel = max(max_parallel or settings.scrape_max_parallel_requests, 1)
        self.cache = cache if cache is not None else TTLCache(
            settings.scrape_cache_ttl_seconds, settings.scrape_cache_max_entries
        )
        self._transport = transport

    def can_scrape_without_browser(self, url: str) -> bool:
        if not web_utils.is_valid_url(url):
            return False
        return not requires_javascript(web_utils.extract_domain(url))

    async def _fetch(self, url: str, options: ScrapeOptions) -> httpx.Response:
        headers = {
            "User-Agent": options.user_agent or random.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
        }
        async with httpx.AsyncClient(
            timeout=options.timeout_ms / 1000,
            follow_redirects=options.follow_redirects,
            transport=self._transport,
        ) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            return response

    async def scrape(self, url: str, options: ScrapeOptions) -> ScrapedContent:
        cache_key = (canonical_url(url), options.extract_media, options.max_content_length)
        cached = self.cache.get(cache_key)
        if cached is not None:
            # Equivalent URLs share an entry; report the one the caller asked for.
            return cached.model_copy(update={"url": url})

        t0 = time.monotonic()
        max_attempts = self.retry_max + 1
        response: httpx.Response | None = None
        last_error = "unknown error"
        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._fetch(url, options)
                break
            except httpx.HTTPStatusError as exc:
                last_error = f"HTTP {exc.response.status_code}"
                # Client errors will not change on retry.
                if exc.response.status_code < 500:
                    break
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                last_error = str(exc) or exc.__class__.__name__
            if attempt < max_attempts:
                await asyncio.sleep(min(0.25 * attempt, 1.0))

        if response is None:
            logger.debug(f"Scrape failed for {url}: {last_error}")
            return ScrapedContent(
                url=url,
                success=False,
                error=last_error,
                duration_ms=int((time.monotonic() - t0) * 1000),
            )

        result = parse_html(url, response.text, options, int((time.monotonic() - t0) * 1000))
        self.cache.set(cache_key, result)
        return result

    async def scrape_many(self, urls: Sequence[str], options: ScrapeOptions) -> AsyncIterator[ScrapedContent]:
        """Scrape concurrently, yielding results in input order."""
        semaphore = asyncio.Semaphore(self.max_parallel)

        async def run(url: str) -> ScrapedContent:
            async with semaphore:
                return await self.scrape(url, options)

        tasks = [asyncio.create_task(run(url)) for url in urls]
        try:
            for task in tasks:
                yield await task
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
