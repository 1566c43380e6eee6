"""SQLAlchemy database models for the Notetaker core."""
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, String, Text, create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from notetaker.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note.

    Only the note record is persisted. Tag and reference lookups are
    derived structures rebuilt from these rows on startup.
    """
    __tablename__ = "notes"
    id = Column(String(255), primary_key=True, index=True)
    title = Column(String(1000), nullable=False, index=True)
    body = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    # Naive UTC; converted back with ensure_timezone_aware on read
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


def init_db(database_url: Optional[str] = None):
    """Create an engine and the schema.

    In-memory databases share one connection through a StaticPool so
    every session sees the same data. File databases get WAL journaling
    for crash resilience.

    Args:
        database_url: SQLAlchemy URL. Defaults to ``config.get_db_url()``.

    Returns:
        The configured engine.
    """
    url = database_url or config.get_db_url()

    if _is_memory_url(url):
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # WAL mode: writes go to separate journal, preventing corruption on crash
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
