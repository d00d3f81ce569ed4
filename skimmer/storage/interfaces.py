"""Interface definitions for item storage."""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Set

from ..ingestion.interfaces import NormalizedItem


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class Item:
    """A persisted feed item."""
    id: int
    feed_url: str
    title: str = ""
    link: str = ""
    guid: Optional[str] = None
    author: str = ""
    content: str = ""
    categories: List[str] = field(default_factory=list)
    feed_name: str = ""
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    favourite: bool = False

    @property
    def read(self) -> bool:
        return self.read_at is not None

    @property
    def sort_time(self) -> datetime:
        """Publication time, or the time the item was first stored."""
        return self.published_at or self.created_at or datetime.min


class ItemStorageInterface:
    """Capabilities every item store provides.

    All methods may raise StoreError; NotFoundError for unknown ids.
    """

    def upsert_item(self, item: NormalizedItem) -> int:
        """Create or refresh an item keyed by (feed_url, guid or link); return its id."""
        raise NotImplementedError

    def begin_batch(self) -> None:
        """Start a transaction that holds every upsert until end_batch."""
        raise NotImplementedError

    def end_batch(self) -> None:
        """Commit the open batch."""
        raise NotImplementedError

    def rollback_batch(self) -> None:
        """Discard the open batch."""
        raise NotImplementedError

    @contextmanager
    def batch(self) -> Iterator["ItemStorageInterface"]:
        """Run a block of upserts as one all-or-nothing transaction."""
        self.begin_batch()
        try:
            yield self
        except BaseException:
            self.rollback_batch()
            raise
        self.end_batch()

    def get_all_items(self, ordering: str = "asc") -> List[Item]:
        """All items ordered by publication (or creation) time."""
        raise NotImplementedError

    def get_item_by_id(self, item_id: int) -> Item:
        raise NotImplementedError

    def toggle_read(self, item_id: int) -> None:
        raise NotImplementedError

    def mark_all_read(self) -> None:
        raise NotImplementedError

    def toggle_favourite(self, item_id: int) -> None:
        raise NotImplementedError

    def get_all_feed_urls(self) -> Set[str]:
        raise NotImplementedError

    def delete_by_feed_url(self, feed_url: str, include_favourites: bool = False) -> int:
        """Delete a feed's items, keeping favourites unless include_favourites; return count."""
        raise NotImplementedError

    def count_unread(self) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass
