"""Feed management - add feeds to the config file."""

import os
import tempfile
from pathlib import Path
from typing import List

import yaml
import structlog

from .feeds import read_config_file, parse_feeds
from .settings import settings
from ..errors import ConfigError, FeedAlreadyExistsError
from ..ingestion.interfaces import Feed

logger = structlog.get_logger()


class FeedManager:
    """Edits the ``feeds:`` list of the YAML config, keeping other keys intact."""

    def __init__(self, config_path: Path = None):
        self.config_path = Path(config_path or settings.config_path).expanduser()

    def _load_config(self) -> dict:
        return read_config_file(self.config_path)

    def _save_config(self, config: dict) -> None:
        """Save config atomically using temp file + rename."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temp file in same directory
        fd, temp_path = tempfile.mkstemp(
            dir=self.config_path.parent,
            suffix=".yml"
        )
        try:
            with os.fdopen(fd, 'w') as f:
                yaml.safe_dump(config, f, sort_keys=False, allow_unicode=True)
            # Atomic rename
            os.replace(temp_path, self.config_path)
            logger.info("config_saved", path=str(self.config_path))
        except OSError as e:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise ConfigError(f"unable to write config {self.config_path}: {e}") from e

    def add_feed(self, url: str, name: str = "", tags: List[str] = None) -> Feed:
        """Add a new feed. Raises FeedAlreadyExistsError for a known URL."""
        config = self._load_config()

        for feed in parse_feeds(config):
            if feed.url == url:
                raise FeedAlreadyExistsError(url)

        new_feed = Feed(url=url, name=name or "", tags=list(tags or []))
        config["feeds"].append(new_feed.to_dict())
        self._save_config(config)

        logger.info("feed_added", url=url, name=name)
        return new_feed
