"""Session state held by the navigator."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ..ingestion.interfaces import Feed
from ..search.filter import ItemProjection
from ..storage.interfaces import Item


class Mode(Enum):
    """Which screen the session is on."""
    LIST = "list"
    ARTICLE = "article"


@dataclass
class ViewFlags:
    """Visibility and reading toggles."""
    show_read: bool = False
    show_favourites: bool = False
    auto_read: bool = False

    @property
    def consumes_on_read(self) -> bool:
        """Read items leave the list as soon as they are read."""
        return self.auto_read and not self.show_read


@dataclass(frozen=True)
class ViewItem:
    """One row of the visible list, as handed to the renderer."""
    id: int
    title: str
    feed_name: str
    url: str
    read: bool = False
    favourite: bool = False
    tags: tuple = ()

    @classmethod
    def from_item(cls, item: Item, feed: Optional[Feed] = None) -> "ViewItem":
        tags = list(feed.tags) if feed else []
        tags.extend(c for c in item.categories if c not in tags)
        return cls(
            id=item.id,
            title=item.title,
            feed_name=feed.display_name if feed else item.feed_url,
            url=item.link,
            read=item.read,
            favourite=item.favourite,
            tags=tuple(tags),
        )

    def projection(self) -> ItemProjection:
        return ItemProjection(title=self.title, feed_name=self.feed_name, tags=list(self.tags))


@dataclass(frozen=True)
class UndoSlot:
    """The last item hidden by a read toggle and where it was."""
    item: ViewItem
    index: int


@dataclass
class SessionState:
    flags: ViewFlags = field(default_factory=ViewFlags)
    items: List[ViewItem] = field(default_factory=list)
    cursor: int = 0
    selected: Optional[int] = None
    undo: Optional[UndoSlot] = None
    query: str = ""
    status: str = ""
    errors: List[str] = field(default_factory=list)
    refreshing: bool = False
    last_refresh: Optional[datetime] = None
    last_attempt: Optional[datetime] = None

    @property
    def mode(self) -> Mode:
        return Mode.LIST if self.selected is None else Mode.ARTICLE

    def cursor_item(self) -> Optional[ViewItem]:
        if 0 <= self.cursor < len(self.items):
            return self.items[self.cursor]
        return None

    def index_of(self, item_id: int) -> Optional[int]:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        return None

    def clamp_cursor(self) -> None:
        """Keep the cursor on the last row when the list shrinks."""
        if self.cursor >= len(self.items):
            self.cursor = max(len(self.items) - 1, 0)
        if self.cursor < 0:
            self.cursor = 0
