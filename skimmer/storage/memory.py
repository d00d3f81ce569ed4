"""In-process item storage for preview sessions."""

import copy
import threading
from typing import Dict, List, Optional, Set

import structlog

from .interfaces import Item, ItemStorageInterface, utcnow
from ..errors import NotFoundError, StoreError
from ..ingestion.interfaces import NormalizedItem

logger = structlog.get_logger()


class MemoryItemStorage(ItemStorageInterface):
    """Keeps items in a dict; nothing survives the process."""

    def __init__(self):
        self._items: Dict[int, Item] = {}
        self._next_id = 1
        self._lock = threading.RLock()
        self._snapshot = None

    def begin_batch(self) -> None:
        self._lock.acquire()
        if self._snapshot is not None:
            self._lock.release()
            raise StoreError("a batch is already open")
        self._snapshot = (copy.deepcopy(self._items), self._next_id)

    def end_batch(self) -> None:
        if self._snapshot is None:
            raise StoreError("no batch is open")
        self._snapshot = None
        self._lock.release()

    def rollback_batch(self) -> None:
        if self._snapshot is None:
            return
        (self._items, self._next_id), self._snapshot = self._snapshot, None
        self._lock.release()
        logger.warning("batch_rolled_back")

    def upsert_item(self, item: NormalizedItem) -> int:
        now = utcnow()
        with self._lock:
            existing = self._find_existing(item)
            if existing is not None:
                existing.title = item.title
                existing.content = item.content
                existing.updated_at = now
                if item.guid and not existing.guid:
                    existing.guid = item.guid
                return existing.id

            stored = Item(
                id=self._next_id,
                feed_url=item.feed_url,
                title=item.title,
                link=item.link,
                guid=item.guid,
                author=item.author,
                content=item.content,
                categories=list(item.categories),
                published_at=item.published_at,
                created_at=now,
                updated_at=now,
            )
            self._items[stored.id] = stored
            self._next_id += 1
            return stored.id

    def _find_existing(self, item: NormalizedItem) -> Optional[Item]:
        same_feed = [i for i in self._items.values() if i.feed_url == item.feed_url]
        if item.guid:
            for stored in same_feed:
                if stored.guid == item.guid:
                    return stored
            if not item.link:
                return None
            same_feed = [i for i in same_feed if not i.guid]
        for stored in same_feed:
            if stored.link == item.link:
                return stored
        return None

    def get_all_items(self, ordering: str = "asc") -> List[Item]:
        with self._lock:
            items = sorted(
                self._items.values(),
                key=lambda i: (i.sort_time, i.id),
                reverse=(ordering == "desc"),
            )
            return [copy.deepcopy(i) for i in items]

    def get_item_by_id(self, item_id: int) -> Item:
        with self._lock:
            return copy.deepcopy(self._get(item_id))

    def toggle_read(self, item_id: int) -> None:
        with self._lock:
            item = self._get(item_id)
            item.read_at = None if item.read_at else utcnow()

    def mark_all_read(self) -> None:
        now = utcnow()
        with self._lock:
            for item in self._items.values():
                if item.read_at is None:
                    item.read_at = now

    def toggle_favourite(self, item_id: int) -> None:
        with self._lock:
            item = self._get(item_id)
            item.favourite = not item.favourite

    def get_all_feed_urls(self) -> Set[str]:
        with self._lock:
            return {i.feed_url for i in self._items.values()}

    def delete_by_feed_url(self, feed_url: str, include_favourites: bool = False) -> int:
        with self._lock:
            doomed = [
                i.id for i in self._items.values()
                if i.feed_url == feed_url and (include_favourites or not i.favourite)
            ]
            for item_id in doomed:
                del self._items[item_id]
            return len(doomed)

    def count_unread(self) -> int:
        with self._lock:
            return sum(1 for i in self._items.values() if i.read_at is None)

    def _get(self, item_id: int) -> Item:
        try:
            return self._items[item_id]
        except KeyError:
            raise NotFoundError(item_id) from None
