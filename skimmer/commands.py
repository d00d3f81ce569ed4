"""Command-style entry points used by the CLI."""

import asyncio
from pathlib import Path
from typing import List

import yaml
import structlog

from .config.feed_manager import FeedManager
from .config.feeds import load_feeds, load_settings
from .config.settings import Settings
from .errors import ConfigError, SkimmerError
from .ingestion.interfaces import Feed
from .pipeline.refresh import RefreshPipeline, clean_feeds
from .session.navigator import Navigator, visible_items
from .session.state import ViewFlags
from .storage.factory import create_item_storage
from .storage.interfaces import ItemStorageInterface

logger = structlog.get_logger()


class Commands:
    """One configured session: settings, feeds and a store."""

    def __init__(
        self,
        app_settings: Settings,
        feeds: List[Feed],
        storage: ItemStorageInterface,
        preview: bool = False,
    ):
        self.settings = app_settings
        self.feeds = feeds
        self.storage = storage
        self.preview = preview
        self.pipeline = RefreshPipeline(storage, feeds, app_settings=app_settings)

    @classmethod
    def from_config(cls, config_path: Path = None, preview_feeds: List[str] = None) -> "Commands":
        """Load settings and feeds; preview feeds get a throwaway in-memory store."""
        app_settings = load_settings(config_path)
        preview = bool(preview_feeds)
        if preview:
            feeds = [Feed(url=url) for url in preview_feeds]
        else:
            feeds = load_feeds(app_settings.config_path, app_settings)
        storage = create_item_storage(app_settings.database_url, preview=preview)
        return cls(app_settings, feeds, storage, preview=preview)

    def close(self) -> None:
        self.storage.close()

    def flags(self) -> ViewFlags:
        return ViewFlags(
            show_read=self.settings.show_read,
            show_favourites=self.settings.show_favourites,
            auto_read=self.settings.auto_read,
        )

    def navigator(self) -> Navigator:
        """A navigator over this session's store and feeds."""
        return Navigator(
            self.storage,
            self.feeds,
            flags=self.flags(),
            ordering=self.settings.ordering,
            include_feed_name=self.settings.default_include_feed_name,
            refresh_interval_minutes=self.settings.refresh_interval_minutes,
            pipeline=self.pipeline,
        )

    def list_items(self) -> str:
        """Visible items as ``title`` followed by an indented link."""
        clean_feeds(self.storage, self.feeds)
        items = visible_items(self.storage.get_all_items(self.settings.ordering), self.flags())
        return "".join(f"{item.title} \n  - {item.link}\n" for item in items)

    def add_feed(self, url: str, name: str = "", tags: List[str] = None) -> Feed:
        """Add a feed to the config file. Raises FeedAlreadyExistsError."""
        if self.preview:
            raise ConfigError("feeds cannot be added in preview mode")
        feed = FeedManager(self.settings.config_path).add_feed(url, name, tags)
        self.feeds.append(feed)
        return feed

    async def refresh(self) -> List[str]:
        """Fetch all feeds into the store; returns one message per failed feed."""
        stats = await self.pipeline.run()
        return stats["errors"]

    def count_unread(self) -> int:
        return self.storage.count_unread()

    def show_config(self) -> str:
        """Effective configuration as YAML."""
        data = self.settings.model_dump(mode="json")
        data["feeds"] = [f.to_dict() for f in self.feeds]
        return yaml.safe_dump(data, sort_keys=False)

    async def monitor(self, iterations: int = None) -> None:
        """Refresh every ``refresh_interval_minutes`` until cancelled."""
        interval = self.settings.refresh_interval_minutes
        if interval <= 0:
            logger.info("monitor_disabled")
            return

        count = 0
        while iterations is None or count < iterations:
            await asyncio.sleep(interval * 60)
            try:
                errors = await self.refresh()
            except SkimmerError as e:
                logger.error("monitor_refresh_failed", error=str(e))
            else:
                logger.info("monitor_refreshed", failed=len(errors))
            count += 1
