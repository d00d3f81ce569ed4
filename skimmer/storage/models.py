"""SQLAlchemy models and schema migrations for the item database."""

from sqlalchemy import create_engine, event, text, Column, Integer, Text, Boolean, DateTime, JSON
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
import structlog

from .interfaces import utcnow
from ..errors import MigrationError, StoreError

logger = structlog.get_logger()

Base = declarative_base()


class ItemModel(Base):
    """Database model for feed items."""
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    feed_url = Column(Text, nullable=False)
    link = Column(Text)
    guid = Column(Text)

    # Content
    title = Column(Text)
    content = Column(Text)
    author = Column(Text)
    categories = Column(JSON, nullable=False, default=list)

    # Timestamps
    read_at = Column(DateTime)
    published_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)

    favourite = Column(Boolean, nullable=False, default=False)


class MigrationModel(Base):
    """One row per applied migration statement."""
    __tablename__ = "migrations"

    id = Column(Integer, primary_key=True)
    run_at = Column(DateTime, nullable=False)


# Initial schema. Everything added later goes through MIGRATIONS.
SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        feed_url TEXT NOT NULL,
        link TEXT,
        title TEXT,
        content TEXT,
        author TEXT,
        read_at DATETIME,
        published_at DATETIME,
        updated_at DATETIME NOT NULL,
        created_at DATETIME NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS migrations (
        id INTEGER PRIMARY KEY,
        run_at DATETIME NOT NULL
    )
    """,
]

# Append only. The ledger stores how many of these have run.
MIGRATIONS = [
    "ALTER TABLE items ADD COLUMN favourite BOOLEAN NOT NULL DEFAULT 0",
    "ALTER TABLE items ADD COLUMN guid TEXT",
    "ALTER TABLE items ADD COLUMN categories TEXT NOT NULL DEFAULT '[]'",
    "CREATE INDEX IF NOT EXISTS idx_items_feed_link ON items (feed_url, link)",
    "CREATE INDEX IF NOT EXISTS idx_items_feed_guid ON items (feed_url, guid)",
]


def create_sqlite_engine(database_url: str):
    """Engine whose transactions also cover DDL statements."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=False)

    # Emit BEGIN ourselves so DDL runs inside the transaction too.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def applied_migrations(engine) -> int:
    """Number of migration statements recorded in the ledger."""
    with engine.connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM migrations")).scalar()


def run_migrations(engine, migrations=None) -> int:
    """Run pending migrations in one transaction; return how many ran."""
    migrations = MIGRATIONS if migrations is None else migrations

    try:
        with engine.begin() as conn:
            applied = conn.execute(text("SELECT COUNT(*) FROM migrations")).scalar()
            pending = migrations[applied:]
            for index, statement in enumerate(pending, start=applied + 1):
                conn.execute(text(statement))
                conn.execute(
                    text("INSERT INTO migrations (id, run_at) VALUES (:id, :run_at)"),
                    {"id": index, "run_at": utcnow()},
                )
    except SQLAlchemyError as e:
        logger.error("migration_failed", error=str(e))
        raise MigrationError(f"schema migration failed: {e}") from e

    if pending:
        logger.info("migrations_applied", count=len(pending), total=len(migrations))
    return len(pending)


def init_db(database_url: str, migrations=None):
    """Create the base schema and bring it up to date."""
    engine = create_sqlite_engine(database_url)
    try:
        with engine.begin() as conn:
            for statement in SCHEMA:
                conn.execute(text(statement))
    except SQLAlchemyError as e:
        engine.dispose()
        raise StoreError(f"unable to create schema: {e}") from e

    try:
        run_migrations(engine, migrations)
    except MigrationError:
        engine.dispose()
        raise
    return engine
