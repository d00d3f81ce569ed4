"""RSS/Atom fetcher with async fan-out, per-feed timeouts and retries."""

import asyncio
import re
import ssl
import time
from datetime import datetime
from typing import List, Optional, Union

import aiohttp
import feedparser
from bs4 import BeautifulSoup
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
import structlog

from .interfaces import Feed, NormalizedItem, FetchResult, FetcherInterface
from ..config.settings import settings, TLS_VERSIONS
from ..errors import FetchError, NoFeedsError

logger = structlog.get_logger()


def _is_transient(exc: BaseException) -> bool:
    """Network hiccups and 5xx responses are worth another attempt."""
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status >= 500
    return isinstance(exc, (aiohttp.ClientConnectionError, asyncio.TimeoutError))


class FeedFetcher(FetcherInterface):
    """Async feed fetcher. One task per feed, no concurrency cap."""

    def __init__(
        self,
        timeout_seconds: float = None,
        max_retries: int = None,
        user_agent: str = None,
        min_tls_version: str = None,
        reader_fallback: bool = None,
    ):
        self.session: Optional[aiohttp.ClientSession] = None
        self.timeout_seconds = timeout_seconds or settings.fetch_timeout_seconds
        self.max_retries = max(1, max_retries or settings.fetch_max_retries)
        self.user_agent = user_agent or settings.user_agent
        self.min_tls_version = min_tls_version or settings.min_tls_version
        self.reader_fallback = (
            settings.enable_reader_fallback if reader_fallback is None else reader_fallback
        )

    @classmethod
    def from_settings(cls, app_settings) -> "FeedFetcher":
        return cls(
            timeout_seconds=app_settings.fetch_timeout_seconds,
            max_retries=app_settings.fetch_max_retries,
            user_agent=app_settings.user_agent,
            min_tls_version=app_settings.min_tls_version,
            reader_fallback=app_settings.enable_reader_fallback,
        )

    async def __aenter__(self):
        ssl_context = ssl.create_default_context()
        ssl_context.minimum_version = TLS_VERSIONS[self.min_tls_version]
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=ssl_context),
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={"User-Agent": self.user_agent},
        )
        return self

    async def __aexit__(self, *args):
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch_feed(self, feed: Feed) -> List[NormalizedItem]:
        """Fetch and normalize a single feed. Raises FetchError on failure."""
        start_time = time.time()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception(_is_transient),
                reraise=True,
            ):
                with attempt:
                    body = await asyncio.wait_for(
                        self._download(feed.url), timeout=self.timeout_seconds
                    )
        except asyncio.TimeoutError:
            raise FetchError(feed.url, f"timed out after {self.timeout_seconds}s")
        except aiohttp.ClientError as e:
            raise FetchError(feed.url, str(e) or e.__class__.__name__)

        parsed = feedparser.parse(body)
        if parsed.bozo and not parsed.entries:
            raise FetchError(feed.url, f"unable to parse feed: {parsed.get('bozo_exception')}")

        items = []
        for entry in parsed.entries:
            item = self._parse_entry(entry, feed)
            if item:
                items.append(item)

        if self.reader_fallback:
            for item in items:
                if not item.content and item.link:
                    item.content = await self._extract_readable(item.link)

        for item in items:
            if not item.content:
                item.content = item.link

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "feed_fetched",
            feed=feed.display_name,
            items=len(items),
            time_ms=elapsed_ms,
        )
        return items

    async def fetch_all(self, feeds: List[Feed]) -> FetchResult:
        """Fetch from all feeds concurrently.

        A failing feed is recorded in ``FetchResult.errors`` and does not
        affect the others. Cancelling this coroutine cancels every feed task.
        """
        if not feeds:
            raise NoFeedsError()

        tasks = [self.fetch_feed(feed) for feed in feeds]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        result = FetchResult()
        for feed, outcome in zip(feeds, results):
            error = self._as_fetch_error(feed, outcome)
            if error:
                logger.warning("feed_fetch_failed", feed=feed.url, error=error.message)
                result.errors.append(error)
                continue
            result.items.extend(outcome)

        logger.info(
            "all_feeds_fetched",
            items=len(result.items),
            feeds=len(feeds),
            failed=len(result.errors),
        )
        return result

    def _as_fetch_error(
        self, feed: Feed, outcome: Union[List[NormalizedItem], BaseException]
    ) -> Optional[FetchError]:
        if isinstance(outcome, FetchError):
            return outcome
        if isinstance(outcome, asyncio.CancelledError):
            return FetchError(feed.url, "cancelled")
        if isinstance(outcome, Exception):
            return FetchError(feed.url, str(outcome) or outcome.__class__.__name__)
        return None

    async def _download(self, url: str) -> bytes:
        async with self.session.get(url) as response:
            response.raise_for_status()
            return await response.read()

    def _parse_entry(self, entry, feed: Feed) -> Optional[NormalizedItem]:
        """Parse a feed entry into a NormalizedItem."""
        link = entry.get("link", "") or ""
        guid = entry.get("id") or None
        if not link and not guid:
            return None

        # Richest source first: full content, then summary/description
        content = ""
        if entry.get("content"):
            content = entry.content[0].get("value", "") or ""
        if not content:
            content = entry.get("summary", "") or ""

        categories = [t.get("term") for t in entry.get("tags", []) if t.get("term")]

        # Parse date
        published_at = None
        for attr in ["published_parsed", "updated_parsed"]:
            parsed = entry.get(attr)
            if parsed:
                try:
                    published_at = datetime(*parsed[:6])
                    break
                except (TypeError, ValueError):
                    pass

        return NormalizedItem(
            feed_url=feed.url,
            feed_name=feed.display_name,
            title=entry.get("title", "") or "",
            link=link,
            guid=guid,
            author=entry.get("author", "") or "",
            content=content,
            categories=categories,
            published_at=published_at,
        )

    async def _extract_readable(self, url: str) -> str:
        """Pull the article body out of a web page. Empty string on failure."""
        try:
            html = await asyncio.wait_for(self._download(url), timeout=self.timeout_seconds)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("reader_fetch_failed", url=url, error=str(e))
            return ""
        return extract_article_html(html)


def extract_article_html(html: Union[str, bytes]) -> str:
    """Reader-mode heuristics: keep the main article's block elements."""
    soup = BeautifulSoup(html, "html.parser")

    # Remove unwanted elements
    for tag in soup.find_all([
        "script", "style", "nav", "header", "footer", "aside",
        "noscript", "iframe", "form", "button", "input"
    ]):
        tag.decompose()

    article = (
        soup.find("article") or
        soup.find(class_=re.compile(r"^(article|post|post-content|entry-content|story)$", re.I)) or
        soup.find(attrs={"role": "main"}) or
        soup.find("main") or
        soup.body
    )
    if article is None:
        return ""

    parts = [
        str(elem)
        for elem in article.find_all(["p", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "blockquote", "pre"])
        if elem.get_text(strip=True)
    ]
    return "\n".join(parts)
