"""SQLite-backed item storage."""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Set

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
import structlog

from .interfaces import Item, ItemStorageInterface, utcnow
from .models import ItemModel, init_db
from ..config.settings import settings
from ..errors import NotFoundError, StoreError
from ..ingestion.interfaces import NormalizedItem

logger = structlog.get_logger()


class SQLiteItemStorage(ItemStorageInterface):
    """SQLite storage for feed items."""

    def __init__(self, database_url: str = None, migrations=None):
        if database_url is None:
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.database_url = database_url
        self.engine = init_db(database_url, migrations)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._lock = threading.RLock()
        self._batch = None

    @contextmanager
    def _session(self):
        """Session for one operation, or the open batch session."""
        with self._lock:
            if self._batch is not None:
                try:
                    yield self._batch
                except SQLAlchemyError as e:
                    logger.error("store_batch_write_failed", error=str(e))
                    raise StoreError(str(e)) from e
                return

            session = self.Session()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("store_write_failed", error=str(e))
                raise StoreError(str(e)) from e
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def begin_batch(self) -> None:
        self._lock.acquire()
        if self._batch is not None:
            self._lock.release()
            raise StoreError("a batch is already open")
        self._batch = self.Session()
        logger.debug("batch_started")

    def end_batch(self) -> None:
        if self._batch is None:
            raise StoreError("no batch is open")
        session, self._batch = self._batch, None
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("batch_commit_failed", error=str(e))
            raise StoreError(str(e)) from e
        finally:
            session.close()
            self._lock.release()
        logger.debug("batch_committed")

    def rollback_batch(self) -> None:
        if self._batch is None:
            return
        session, self._batch = self._batch, None
        try:
            session.rollback()
        finally:
            session.close()
            self._lock.release()
        logger.warning("batch_rolled_back")

    def upsert_item(self, item: NormalizedItem) -> int:
        """Insert a new item or refresh title/content of the stored one."""
        now = utcnow()
        with self._session() as session:
            model = self._find_existing(session, item)
            if model is not None:
                model.title = item.title
                model.content = item.content
                model.updated_at = now
                if item.guid and not model.guid:
                    model.guid = item.guid
            else:
                model = ItemModel(
                    feed_url=item.feed_url,
                    link=item.link,
                    guid=item.guid,
                    title=item.title,
                    content=item.content,
                    author=item.author,
                    categories=list(item.categories),
                    published_at=item.published_at,
                    created_at=now,
                    updated_at=now,
                    favourite=False,
                )
                session.add(model)
            session.flush()
            return model.id

    def _find_existing(self, session, item: NormalizedItem) -> Optional[ItemModel]:
        query = session.query(ItemModel).filter(ItemModel.feed_url == item.feed_url)
        if item.guid:
            model = query.filter(ItemModel.guid == item.guid).first()
            if model is not None or not item.link:
                return model
            # Rows stored before the feed supplied GUIDs
            return query.filter(
                ItemModel.link == item.link,
                or_(ItemModel.guid.is_(None), ItemModel.guid == ""),
            ).first()
        return query.filter(ItemModel.link == item.link).first()

    def get_all_items(self, ordering: str = "asc") -> List[Item]:
        sort_key = func.coalesce(ItemModel.published_at, ItemModel.created_at)
        if ordering == "desc":
            order = [sort_key.desc(), ItemModel.id.desc()]
        else:
            order = [sort_key.asc(), ItemModel.id.asc()]

        with self._session() as session:
            models = session.query(ItemModel).order_by(*order).all()
            return [self._model_to_item(m) for m in models]

    def get_item_by_id(self, item_id: int) -> Item:
        with self._session() as session:
            return self._model_to_item(self._get_model(session, item_id))

    def toggle_read(self, item_id: int) -> None:
        with self._session() as session:
            model = self._get_model(session, item_id)
            model.read_at = None if model.read_at else utcnow()
            logger.debug("item_read_toggled", id=item_id, read=model.read_at is not None)

    def mark_all_read(self) -> None:
        with self._session() as session:
            count = session.query(ItemModel)\
                .filter(ItemModel.read_at.is_(None))\
                .update({ItemModel.read_at: utcnow()}, synchronize_session=False)
            logger.info("items_marked_read", count=count)

    def toggle_favourite(self, item_id: int) -> None:
        with self._session() as session:
            model = self._get_model(session, item_id)
            model.favourite = not model.favourite
            logger.debug("item_favourite_toggled", id=item_id, favourite=model.favourite)

    def get_all_feed_urls(self) -> Set[str]:
        with self._session() as session:
            rows = session.query(ItemModel.feed_url).distinct().all()
            return {row[0] for row in rows}

    def delete_by_feed_url(self, feed_url: str, include_favourites: bool = False) -> int:
        with self._session() as session:
            query = session.query(ItemModel).filter(ItemModel.feed_url == feed_url)
            if not include_favourites:
                query = query.filter(ItemModel.favourite == False)  # noqa: E712
            count = query.delete(synchronize_session=False)
            logger.info("feed_items_deleted", feed=feed_url, count=count)
            return count

    def count_unread(self) -> int:
        with self._session() as session:
            return session.query(ItemModel)\
                .filter(ItemModel.read_at.is_(None))\
                .count()

    def close(self) -> None:
        self.rollback_batch()
        self.engine.dispose()

    def _get_model(self, session, item_id: int) -> ItemModel:
        model = session.get(ItemModel, item_id)
        if model is None:
            raise NotFoundError(item_id)
        return model

    def _model_to_item(self, model: ItemModel) -> Item:
        """Convert database model to Item."""
        return Item(
            id=model.id,
            feed_url=model.feed_url,
            title=model.title or "",
            link=model.link or "",
            guid=model.guid or None,
            author=model.author or "",
            content=model.content or "",
            categories=list(model.categories or []),
            published_at=model.published_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            read_at=model.read_at,
            favourite=bool(model.favourite),
        )
