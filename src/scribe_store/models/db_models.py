"""SQLAlchemy database models for the Scribe note store."""

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Text, create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from scribe_store.models.schema import utc_now

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBFolder(Base):
    """Database model for a folder."""
    __tablename__ = "folders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    color = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of folder."""
        return f"<Folder(id={self.id}, name='{self.name}')>"


class DBTag(Base):
    """Registry of tag names currently in use.

    Tags are derived from the JSON list on each note; this table only mirrors
    the set of names and is never used to compute tag listings.
    """
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    # JSON array of tag names
    tags = Column(Text, nullable=False, default="[]")
    pinned = Column(Boolean, nullable=False, default=False)
    folder_id = Column(
        Integer, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True
    )
    encrypted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_notes_folder", "folder_id"),
        Index("idx_notes_pinned", "pinned"),
        Index("idx_notes_created", "created_at"),
        Index("idx_notes_updated", "updated_at"),
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, title='{self.title}')>"


def init_db(db_url: str) -> Engine:
    """Create the engine and the schema.

    Every connection gets ``PRAGMA foreign_keys=ON``: deleting a
    folder nulls ``notes.folder_id`` and writes against a missing folder fail.
    In-memory URLs share one connection so the schema outlives the first
    session.
    """
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(db_url, pool_pre_ping=True)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        # WAL mode: writes go to separate journal, preventing corruption on crash
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    # keep objects readable after commit
    return sessionmaker(bind=engine, expire_on_commit=False)
