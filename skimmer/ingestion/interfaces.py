"""Interface definitions for feed ingestion."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from ..errors import FetchError


@dataclass
class Feed:
    """A configured feed."""
    url: str
    name: str = ""
    tags: List[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.url

    def to_dict(self) -> dict:
        """Convert to the config file representation."""
        data = {"url": self.url}
        if self.name:
            data["name"] = self.name
        if self.tags:
            data["tags"] = list(self.tags)
        return data


@dataclass
class NormalizedItem:
    """An entry fetched from a feed, ready to be upserted."""
    feed_url: str
    title: str = ""
    link: str = ""
    guid: Optional[str] = None
    feed_name: str = ""
    author: str = ""
    content: str = ""
    categories: List[str] = field(default_factory=list)
    published_at: Optional[datetime] = None


@dataclass
class FetchResult:
    """Items from every feed that succeeded plus one error per failed feed."""
    items: List[NormalizedItem] = field(default_factory=list)
    errors: List[FetchError] = field(default_factory=list)

    @property
    def error_messages(self) -> List[str]:
        return [str(e) for e in self.errors]


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch_feed(self, feed: Feed) -> List[NormalizedItem]:
        """Fetch and normalize a single feed."""
        raise NotImplementedError

    async def fetch_all(self, feeds: List[Feed]) -> FetchResult:
        """Fetch from all feeds concurrently."""
        raise NotImplementedError
