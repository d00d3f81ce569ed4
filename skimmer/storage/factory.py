"""Factory functions to create storage instances.

Durable sessions get the SQLite store at ``settings.database_path``;
preview sessions get an in-memory store that is thrown away on exit.
"""

import os

import structlog

from .interfaces import ItemStorageInterface

logger = structlog.get_logger()


def get_database_url() -> str:
    """Get database URL from environment, with fallback to the settings path."""
    url = os.environ.get('SKIMMER_DATABASE_URL')
    if url:
        return url

    from ..config.settings import settings
    return settings.database_url


def create_item_storage(database_url: str = None, preview: bool = False) -> ItemStorageInterface:
    """Build a new storage instance."""
    if preview:
        from .memory import MemoryItemStorage
        logger.info("using_memory_storage")
        return MemoryItemStorage()

    from .database import SQLiteItemStorage
    url = database_url or get_database_url()
    logger.info("using_sqlite_storage", url=url[:60])
    return SQLiteItemStorage(url)

