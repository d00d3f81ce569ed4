"""Item storage: SQLite and in-memory backends."""

from .interfaces import Item, ItemStorageInterface
from .database import SQLiteItemStorage
from .memory import MemoryItemStorage
from .models import ItemModel, MigrationModel, MIGRATIONS, init_db, run_migrations
from .factory import create_item_storage, get_database_url

__all__ = [
    "Item", "ItemStorageInterface", "SQLiteItemStorage", "MemoryItemStorage",
    "ItemModel", "MigrationModel", "MIGRATIONS", "init_db", "run_migrations",
    "create_item_storage", "get_database_url",
]
