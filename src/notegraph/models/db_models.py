"""SQLAlchemy database models for notegraph."""
from sqlalchemy import (JSON, Boolean, Column, DateTime, ForeignKey, Integer,
                        String, Table, Text, UniqueConstraint, create_engine,
                        event)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from notegraph.config import config
from notegraph.models.schema import NoteLinkType, utc_now

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for tags and notes
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", String(36), ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=utc_now, nullable=False),
)


class DBGroup(Base):
    """Database model for a group. Parent pointers form a forest per user."""
    __tablename__ = "groups"
    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)
    icon = Column(String(50), nullable=True)
    parent_id = Column(String(36), ForeignKey("groups.id"), nullable=True, index=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    notes = relationship("DBNote", back_populates="group")

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='unique_group_name'),
    )

    def __repr__(self) -> str:
        return f"<Group(id='{self.id}', name='{self.name}', parent='{self.parent_id}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    group_id = Column(String(36), ForeignKey("groups.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    group = relationship("DBGroup", back_populates="notes")
    tags = relationship(
        "DBTag", secondary=note_tags, back_populates="notes"
    )
    outgoing_links = relationship(
        "DBNoteLink",
        foreign_keys="DBNoteLink.source_id",
        back_populates="source",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    incoming_links = relationship(
        "DBNoteLink",
        foreign_keys="DBNoteLink.target_id",
        back_populates="target",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    attachments = relationship(
        "DBNoteAttachment",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag. group_id NULL means a global tag."""
    __tablename__ = "tags"
    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(255), nullable=True)
    is_key = Column(Boolean, default=False, nullable=False)
    group_id = Column(String(36), ForeignKey("groups.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    notes = relationship(
        "DBNote", secondary=note_tags, back_populates="tags"
    )

    def __repr__(self) -> str:
        return f"<Tag(id='{self.id}', name='{self.name}', group='{self.group_id}')>"


class DBNoteLink(Base):
    """Database model for a link between notes."""
    __tablename__ = "note_links"
    id = Column(String(36), primary_key=True)
    source_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True)
    target_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True)
    link_type = Column(String(50), default=NoteLinkType.RELATES_TO.value, nullable=False, index=True)
    weight = Column(Integer, default=1, nullable=False)
    is_bidirectional = Column(Boolean, default=False, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    source = relationship(
        "DBNote", foreign_keys=[source_id], back_populates="outgoing_links"
    )
    target = relationship(
        "DBNote", foreign_keys=[target_id], back_populates="incoming_links"
    )

    # At most one link per (source, target, type); the loser of a race fails here
    __table_args__ = (
        UniqueConstraint('source_id', 'target_id', 'link_type',
                         name='unique_link_type'),
    )

    def __repr__(self) -> str:
        return (
            f"<NoteLink(id='{self.id}', source='{self.source_id}', "
            f"target='{self.target_id}', type='{self.link_type}')>"
        )


class DBNoteAttachment(Base):
    """Database model for attachment metadata."""
    __tablename__ = "note_attachments"
    id = Column(String(36), primary_key=True)
    note_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True)
    original_filename = Column(String(255), nullable=False)
    filename = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    uploaded_at = Column(DateTime, default=utc_now, nullable=False)

    note = relationship("DBNote", back_populates="attachments")

    def __repr__(self) -> str:
        return f"<NoteAttachment(id='{self.id}', filename='{self.original_filename}')>"


class DBGraphLayout(Base):
    """Saved node positions of one graph view, keyed by user and group key."""
    __tablename__ = "graph_layouts"
    user_id = Column(String(255), primary_key=True)
    group_key = Column(String(64), primary_key=True)
    positions = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<GraphLayout(user='{self.user_id}', group_key='{self.group_key}')>"


def _is_memory_url(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in db_url


def init_db(db_url: str = None):
    """Create the engine and the schema.

    File databases get WAL mode and a small connection pool. In-memory
    databases share one connection, otherwise every session would see an
    empty database. Foreign keys are enforced on every connection so the
    ON DELETE CASCADE rules hold for bulk deletes too.
    """
    db_url = db_url or config.get_db_url()

    if _is_memory_url(db_url):
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
        )

    if db_url.startswith("sqlite"):
        use_wal = not _is_memory_url(db_url)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if use_wal:
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
