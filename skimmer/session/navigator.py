"""Session state machine.

The navigator owns a SessionState and changes it only in ``update``, one
message at a time. Store calls happen inline; anything slow or external
(network refresh, opening a browser) is returned as an effect for the
session loop to run.

Two screens: List (nothing open) and Article (``state.selected`` set).
With auto-read on and read items hidden, opening an article removes it from
the list, so the cursor already points at the next item; Next and Prev
resolve against the cursor instead of stepping from it.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog

from . import messages as msg
from .state import Mode, SessionState, UndoSlot, ViewFlags, ViewItem
from ..config.settings import settings
from ..errors import NotFoundError, StoreError
from ..ingestion.interfaces import Feed
from ..pipeline.refresh import RefreshPipeline, clean_feeds, refresh_due
from ..search.filter import filter_indexes
from ..storage.interfaces import Item, ItemStorageInterface

logger = structlog.get_logger()

ARTICLE_ERROR_STATUS = "Error: failed to get article"


def visible_items(items: List[Item], flags: ViewFlags) -> List[Item]:
    """Apply the show-favourites / show-read projection."""
    if flags.show_favourites:
        return [i for i in items if i.favourite]
    if flags.show_read:
        return list(items)
    return [i for i in items if not i.read]


class Navigator:
    """Reducer over SessionState; ``update(message) -> effects``."""

    def __init__(
        self,
        storage: ItemStorageInterface,
        feeds: List[Feed],
        flags: ViewFlags = None,
        ordering: str = None,
        include_feed_name: bool = None,
        refresh_interval_minutes: int = None,
        pipeline: RefreshPipeline = None,
    ):
        self.storage = storage
        self.feeds = feeds
        self.ordering = ordering or settings.ordering
        self.include_feed_name = (
            settings.default_include_feed_name if include_feed_name is None else include_feed_name
        )
        self.refresh_interval_minutes = (
            settings.refresh_interval_minutes
            if refresh_interval_minutes is None else refresh_interval_minutes
        )
        self.pipeline = pipeline or RefreshPipeline(storage, feeds)
        self.state = SessionState(flags=flags or ViewFlags(
            show_read=settings.show_read,
            show_favourites=settings.show_favourites,
            auto_read=settings.auto_read,
        ))

        self._handlers: Dict[type, Callable] = {
            msg.Open: self._open,
            msg.Back: self._back,
            msg.Next: self._next,
            msg.Prev: self._prev,
            msg.MoveCursor: self._move_cursor,
            msg.ToggleRead: self._toggle_read,
            msg.ToggleFavourite: self._toggle_favourite,
            msg.ToggleShowRead: self._toggle_show_read,
            msg.ToggleShowFavourites: self._toggle_show_favourites,
            msg.MarkAllRead: self._mark_all_read,
            msg.SetQuery: self._set_query,
            msg.ClearQuery: self._clear_query,
            msg.RequestRefresh: self._request_refresh,
            msg.RefreshTick: self._refresh_tick,
            msg.RefreshFetched: self._refresh_fetched,
            msg.RefreshFailed: self._refresh_failed,
            msg.OpenLink: self._open_link,
        }

    @property
    def flags(self) -> ViewFlags:
        return self.state.flags

    def load(self) -> None:
        """Build the initial visible list."""
        self.update(msg.ClearQuery())

    def update(self, message) -> List:
        """Apply one message. Store failures leave the list and selection as they were."""
        handler = self._handlers.get(type(message))
        if handler is None:
            logger.debug("message_ignored", message=type(message).__name__)
            return []

        snapshot = self._snapshot()
        try:
            return handler(message) or []
        except NotFoundError as e:
            self._restore(snapshot)
            self.state.selected = None
            self.state.status = ARTICLE_ERROR_STATUS
            logger.warning("article_not_found", id=e.item_id)
        except StoreError as e:
            self._restore(snapshot)
            self.state.status = f"Error: {e}"
            logger.error("navigator_store_error", message=type(message).__name__, error=str(e))
        return []

    def current_article(self) -> Optional[Item]:
        """The open article with its feed name resolved, or None."""
        if self.state.selected is None:
            return None
        try:
            item = self.storage.get_item_by_id(self.state.selected)
        except NotFoundError:
            self.state.selected = None
            self.state.status = ARTICLE_ERROR_STATUS
            return None
        feed = self._feeds_by_url().get(item.feed_url)
        item.feed_name = feed.display_name if feed else item.feed_url
        return item

    # Snapshot/restore

    def _snapshot(self):
        s = self.state
        return (list(s.items), s.cursor, s.selected, s.undo, replace(s.flags), s.query)

    def _restore(self, snapshot) -> None:
        s = self.state
        items, s.cursor, s.selected, s.undo, flags, s.query = snapshot
        s.items = list(items)
        s.flags = replace(flags)

    # Visible set

    def _feeds_by_url(self) -> Dict[str, Feed]:
        return {f.url: f for f in self.feeds}

    def _recompute(self) -> None:
        """CleanFeeds, reload, apply visibility, then the query."""
        clean_feeds(self.storage, self.feeds)
        items = visible_items(self.storage.get_all_items(self.ordering), self.flags)

        feeds = self._feeds_by_url()
        views = [ViewItem.from_item(i, feeds.get(i.feed_url)) for i in items]
        if self.state.query:
            indexes = filter_indexes(
                self.state.query,
                [v.projection() for v in views],
                self.include_feed_name,
            )
            views = [views[i] for i in indexes]
        self.state.items = views

    def _rebuild(self) -> None:
        """Recompute, then settle the cursor for the current screen."""
        previous = self.state.items
        self._recompute()
        if self.state.mode == Mode.LIST:
            self.state.clamp_cursor()
        else:
            self._anchor_cursor(previous)

    def _anchor_cursor(self, previous: List[ViewItem]) -> None:
        """Cursor on the open article, else on the first surviving row after it."""
        s = self.state
        index = s.index_of(s.selected)
        if index is not None:
            s.cursor = index
            return
        old = next((i for i, v in enumerate(previous) if v.id == s.selected), None)
        start = s.cursor if old is None else old + 1
        following = {v.id for v in previous[start:]}
        s.cursor = next((i for i, v in enumerate(s.items) if v.id in following), len(s.items))

    def _replace_view(self, item_id: int, **changes) -> None:
        index = self.state.index_of(item_id)
        if index is not None:
            self.state.items[index] = replace(self.state.items[index], **changes)

    def _target_id(self) -> Optional[int]:
        """Open article in Article mode, cursor row in List mode."""
        if self.state.mode == Mode.ARTICLE:
            return self.state.selected
        item = self.state.cursor_item()
        return item.id if item else None

    # List <-> Article

    def _show(self, index: int) -> None:
        """Select the item at ``index``, marking it read when auto-read is on."""
        view = self.state.items[index]
        article = self.storage.get_item_by_id(view.id)
        self.state.selected = view.id
        self.state.cursor = index
        if self.flags.auto_read and not article.read:
            self.storage.toggle_read(view.id)
            self._replace_view(view.id, read=True)

    def _open(self, message: msg.Open):
        if not 0 <= message.index < len(self.state.items):
            return []
        self._show(message.index)
        self._recompute()
        logger.debug("article_opened", id=self.state.selected, index=self.state.cursor)

    def _back(self, message: msg.Back):
        self.state.selected = None
        self._recompute()
        self.state.clamp_cursor()

    def _next_index(self) -> int:
        cursor = self.state.cursor
        if self.flags.consumes_on_read:
            return cursor
        # The open article left the list, so the cursor is on its successor
        if self.state.index_of(self.state.selected) is None:
            return cursor
        return cursor + 1

    def _next_out_of_bounds(self, index: int) -> bool:
        length = len(self.state.items)
        max_index = length - 1
        # The open article has just left the list
        if self.flags.consumes_on_read and index == 0:
            max_index = length
        return index < 0 or index > max_index or max_index < 0 or length == 0

    def _prev_index(self) -> int:
        cursor = self.state.cursor
        if self.flags.consumes_on_read and cursor < len(self.state.items):
            return cursor
        if cursor == 0:
            return 0
        return cursor - 1

    def _prev_out_of_bounds(self, index: int) -> bool:
        return not self.state.items or index < 0 or index >= len(self.state.items)

    def _navigate_to(self, index: int) -> None:
        self._show(index)
        if self.flags.consumes_on_read:
            del self.state.items[index]

    def _next(self, message: msg.Next):
        if self.state.mode != Mode.ARTICLE:
            return []
        index = self._next_index()
        if self._next_out_of_bounds(index):
            logger.debug("navigation_out_of_bounds", direction="next", index=index)
            return []
        self._navigate_to(index)

    def _prev(self, message: msg.Prev):
        if self.state.mode != Mode.ARTICLE:
            return []
        index = self._prev_index()
        if self._prev_out_of_bounds(index):
            logger.debug("navigation_out_of_bounds", direction="prev", index=index)
            return []
        self._navigate_to(index)

    def _move_cursor(self, message: msg.MoveCursor):
        if self.state.mode != Mode.LIST or not self.state.items:
            return []
        self.state.cursor = min(max(self.state.cursor + message.delta, 0), len(self.state.items) - 1)

    # Mutations

    def _toggle_read(self, message: msg.ToggleRead):
        if self.state.mode == Mode.ARTICLE and self.flags.auto_read:
            return []
        item_id = self._target_id()
        if item_id is None:
            return []

        self.storage.toggle_read(item_id)
        stored = self.storage.get_item_by_id(item_id)
        read = stored.read

        if self.flags.show_read:
            self._replace_view(item_id, read=read)
            return []

        undo = self.state.undo
        if not read and undo is not None and undo.item.id == item_id:
            index = min(undo.index, len(self.state.items))
            self.state.items.insert(index, replace(undo.item, read=False))
            self.state.undo = None
            logger.debug("read_toggle_undone", id=item_id, index=index)
        elif not read and self.state.index_of(item_id) is None:
            # Nothing to undo; the article comes back at the cursor
            index = min(self.state.cursor, len(self.state.items))
            feed = self._feeds_by_url().get(stored.feed_url)
            self.state.items.insert(index, ViewItem.from_item(stored, feed))
        elif read:
            index = self.state.index_of(item_id)
            if index is not None:
                view = self.state.items.pop(index)
                self.state.undo = UndoSlot(item=replace(view, read=True), index=index)
            if self.state.mode == Mode.LIST:
                self.state.clamp_cursor()

    def _toggle_favourite(self, message: msg.ToggleFavourite):
        item_id = self._target_id()
        if item_id is None:
            return []

        self.storage.toggle_favourite(item_id)
        if self.flags.show_favourites:
            self._rebuild()
        else:
            favourite = self.storage.get_item_by_id(item_id).favourite
            self._replace_view(item_id, favourite=favourite)

    def _toggle_show_read(self, message: msg.ToggleShowRead):
        self.flags.show_read = not self.flags.show_read
        self.state.undo = None
        self._rebuild()
        self.state.status = "showing read" if self.flags.show_read else ""

    def _toggle_show_favourites(self, message: msg.ToggleShowFavourites):
        self.flags.show_favourites = not self.flags.show_favourites
        self.state.undo = None
        self._rebuild()
        self.state.status = "favourites" if self.flags.show_favourites else ""

    def _mark_all_read(self, message: msg.MarkAllRead):
        self.storage.mark_all_read()
        self.state.undo = None
        self._rebuild()

    def _set_query(self, message: msg.SetQuery):
        self.state.query = message.query
        if self.state.mode == Mode.LIST:
            self._recompute()
            self.state.cursor = 0
        else:
            self._rebuild()

    def _clear_query(self, message: msg.ClearQuery):
        self.state.query = ""
        self._rebuild()

    # Refresh

    def _start_refresh(self, now: datetime = None):
        self.state.refreshing = True
        self.state.last_attempt = now or datetime.now()
        self.state.status = "Refreshing..."
        return [msg.StartRefresh()]

    def _request_refresh(self, message: msg.RequestRefresh):
        if self.state.query:
            logger.debug("refresh_skipped", reason="filtering")
            return []
        if self.state.refreshing:
            return []
        return self._start_refresh()

    def _refresh_tick(self, message: msg.RefreshTick):
        if self.state.refreshing:
            return []
        marks = [t for t in (self.state.last_refresh, self.state.last_attempt) if t is not None]
        since = max(marks) if marks else None
        if not refresh_due(since, self.refresh_interval_minutes, message.now):
            return []
        return self._start_refresh(message.now)

    def _refresh_fetched(self, message: msg.RefreshFetched):
        self.state.refreshing = False
        finished_at = message.finished_at or datetime.now()

        self.pipeline.store(message.result)
        self.state.errors = message.result.error_messages
        self.state.undo = None
        self._rebuild()

        self.state.last_refresh = finished_at
        self.state.status = f"Refreshed at {finished_at:%Y-%m-%d %H:%M:%S}."

    def _refresh_failed(self, message: msg.RefreshFailed):
        self.state.refreshing = False
        self.state.status = f"Error: {message.error}"

    def _open_link(self, message: msg.OpenLink):
        item_id = self._target_id()
        if item_id is None:
            return []
        url = self.storage.get_item_by_id(item_id).link
        return [msg.LaunchUrl(url)] if url else []
