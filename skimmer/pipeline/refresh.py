"""Refresh cycle: fetch every feed, store the items in one batch, drop removed feeds."""

from datetime import datetime
from typing import List, Optional

import structlog

from ..config.settings import Settings, settings
from ..ingestion.fetcher import FeedFetcher
from ..ingestion.interfaces import Feed, FetchResult, FetcherInterface
from ..storage.interfaces import ItemStorageInterface
from ..errors import NoFeedsError

logger = structlog.get_logger()


def clean_feeds(storage: ItemStorageInterface, feeds: List[Feed]) -> int:
    """Delete items of feeds that are no longer configured, keeping favourites."""
    configured = {f.url for f in feeds}
    removed = 0
    for url in storage.get_all_feed_urls() - configured:
        removed += storage.delete_by_feed_url(url, include_favourites=False)
    if removed:
        logger.info("removed_feed_items_deleted", count=removed)
    return removed


def refresh_due(last_refresh: Optional[datetime], interval_minutes: int, now: datetime) -> bool:
    """Whether a periodic refresh should start now."""
    if interval_minutes <= 0:
        return False
    if last_refresh is None:
        return True
    return (now - last_refresh).total_seconds() >= interval_minutes * 60


class RefreshPipeline:
    """Fetch -> batched upsert -> clean, split so the write half can run elsewhere."""

    def __init__(
        self,
        storage: ItemStorageInterface,
        feeds: List[Feed],
        fetcher: FetcherInterface = None,
        app_settings: Settings = None,
    ):
        self.storage = storage
        self.feeds = feeds
        self.fetcher = fetcher
        self.settings = app_settings or settings

    async def fetch(self) -> FetchResult:
        """Network half. Touches no storage."""
        if not self.feeds:
            raise NoFeedsError()

        if self.fetcher is not None:
            return await self.fetcher.fetch_all(self.feeds)

        async with FeedFetcher.from_settings(self.settings) as fetcher:
            return await fetcher.fetch_all(self.feeds)

    def store(self, result: FetchResult) -> dict:
        """Write half. All upserts of one refresh commit together."""
        with self.storage.batch():
            for item in result.items:
                self.storage.upsert_item(item)

        removed = clean_feeds(self.storage, self.feeds)

        stats = {
            "stored_items": len(result.items),
            "removed_items": removed,
            "failed_feeds": len(result.errors),
            "errors": result.error_messages,
        }
        logger.info(
            "refresh_stored",
            items=stats["stored_items"],
            removed=removed,
            failed=stats["failed_feeds"],
        )
        return stats

    async def run(self) -> dict:
        """Run a complete refresh."""
        start = datetime.now()
        result = await self.fetch()
        stats = self.store(result)
        stats["elapsed_seconds"] = (datetime.now() - start).total_seconds()
        return stats

