"""SQLAlchemy database models for Storm Notes.

The engine never sees notes as rows: the note collection and the tag color
map are each stored as one JSON blob under a key.
"""
import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from storm_notes.config import config
from storm_notes.exceptions import StorageError

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBKeyValue(Base):
    """Database model for one key-value entry."""
    __tablename__ = "kv_store"
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.datetime.now,
        onupdate=datetime.datetime.now,
        nullable=False,
    )

    def __repr__(self) -> str:
        """Return string representation of the entry."""
        return f"<KeyValue(key='{self.key}', size={len(self.value or '')})>"


def create_db_engine(db_url: Optional[str] = None) -> Engine:
    """Create an engine with SQLite settings suited to a local store.

    In-memory databases share one connection (StaticPool) so that every
    session sees the same data. File databases use WAL mode.
    """
    url = db_url or config.get_db_url()
    # Debounced writes flush from a timer thread
    connect_args = {"check_same_thread": False}

    if ":memory:" in url:
        return create_engine(url, poolclass=StaticPool, connect_args=connect_args)

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=2,
        max_overflow=4,
        pool_timeout=30,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # WAL mode: writes go to separate journal, preventing corruption on crash
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


def init_db(db_url: Optional[str] = None) -> Engine:
    """Create the engine and the key-value table.

    Raises:
        StorageError: If the database cannot be opened or the table created.
    """
    engine = create_db_engine(db_url)
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise StorageError(
            "Failed to initialize database",
            operation="init_db",
            original_error=e,
        ) from e
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine)
